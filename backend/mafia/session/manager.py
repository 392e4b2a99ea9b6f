from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from mafia.logic.exceptions import ErrorCode, GameRuleError, InvalidInputError
from mafia.messaging.types import ErrorMessage, PongMessage
from mafia.session.gateway import NotificationGateway
from mafia.session.registry import PLAYER_GRACE_SECONDS, ROOM_EXPIRY_SECONDS, RoomRegistry, SweepReport
from mafia.session.scheduler import PhaseScheduler
from mafia.session.types import RoomInfo

if TYPE_CHECKING:
    from mafia.logic.enums import NightActionType
    from mafia.logic.outcome import DeferredTransition, Outcome
    from mafia.logic.room import GameRoom
    from mafia.logic.settings import RoleSettings
    from mafia.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()


class SessionManager:
    """Coordinates commands from connections with rooms in the registry.

    Each command runs one synchronous GameRoom operation, so room state is
    never observed half-changed. Rule violations are answered with a single
    error to the sender; everything else is delivered through the gateway.
    """

    def __init__(
        self,
        registry: RoomRegistry | None = None,
        gateway: NotificationGateway | None = None,
        *,
        max_rooms: int = 100,
        room_expiry_seconds: float = ROOM_EXPIRY_SECONDS,
        player_grace_seconds: float = PLAYER_GRACE_SECONDS,
    ) -> None:
        self._registry = registry or RoomRegistry()
        self._gateway = gateway or NotificationGateway()
        self._scheduler = PhaseScheduler(on_fire=self._handle_deferred)
        self._max_rooms = max_rooms
        self._room_expiry_seconds = room_expiry_seconds
        self._player_grace_seconds = player_grace_seconds

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def gateway(self) -> NotificationGateway:
        return self._gateway

    @property
    def scheduler(self) -> PhaseScheduler:
        return self._scheduler

    @property
    def room_count(self) -> int:
        return self._registry.room_count

    @property
    def player_count(self) -> int:
        return self._registry.player_count

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._gateway.register(connection)

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._gateway.unregister(connection)

    def get_room(self, room_id: str) -> GameRoom | None:
        return self._registry.get(room_id)

    def list_rooms(self) -> list[RoomInfo]:
        """Summaries of every live room, for the room listing endpoint."""
        return [
            RoomInfo(
                room_id=room.room_id,
                status=room.status,
                player_count=room.player_count,
                max_players=room.rules.max_players,
                host_name=room.players[room.host_id].name if room.host_id in room.players else None,
                players=[p.name for p in room.players.values()],
            )
            for room in self._registry.rooms()
        ]

    async def _send_error(self, connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
        logger.warning("session error sent to client", error_code=code.value, error_message=message)
        await self._gateway.send(connection, ErrorMessage(code=code, message=message).model_dump(mode="json"))

    async def _apply(
        self,
        connection: ConnectionProtocol,
        room: GameRoom,
        operation: Callable[[], Outcome],
        *,
        sender: str | None = None,
    ) -> bool:
        """Run one room operation and publish its outcome.

        When sender is given, the player must be bound to this connection.
        Returns False when the operation was rejected; the sender has then
        already received an error.
        """
        try:
            if sender is not None:
                room.require_sender(sender, connection.connection_id)
            outcome = operation()
        except GameRuleError as e:
            await self._send_error(connection, e.code, e.message)
            return False
        await self._publish(room, outcome)
        return True

    async def _publish(self, room: GameRoom, outcome: Outcome) -> None:
        # schedule before delivery: delivery awaits, and the room may change meanwhile
        for transition in outcome.deferred:
            self._scheduler.schedule(room, transition)
        if room.is_empty:
            self._drop_room(room)
        await self._gateway.deliver(room, outcome.events)

    def _drop_room(self, room: GameRoom) -> None:
        if self._registry.holds(room):
            self._registry.remove(room.room_id)
        self._scheduler.cancel_room(room.room_id)

    async def _require_room(self, connection: ConnectionProtocol, room_id: str) -> GameRoom | None:
        try:
            return self._registry.require(room_id)
        except GameRuleError as e:
            await self._send_error(connection, e.code, e.message)
            return None

    # --- Membership ---

    async def join(
        self,
        connection: ConnectionProtocol,
        room_id: str,
        name: str | None,
        player_id: str | None = None,
    ) -> str | None:
        """Join or create a room. Returns the resolved player id, or None on rejection."""
        self._gateway.register(connection)
        room = self._registry.get(room_id)
        created = room is None
        try:
            if created and self._registry.room_count >= self._max_rooms:
                raise InvalidInputError("Server is at room capacity")
            room = self._registry.get_or_create(room_id)
            player, outcome = room.join(name, connection.connection_id, player_id)
        except GameRuleError as e:
            if created and room is not None and room.is_empty:
                self._drop_room(room)
            await self._send_error(connection, e.code, e.message)
            return None

        structlog.contextvars.bind_contextvars(room_id=room.room_id, player_id=player.player_id)
        await self._publish(room, outcome)
        return player.player_id

    async def reconnect(self, connection: ConnectionProtocol, room_id: str, player_id: str) -> None:
        self._gateway.register(connection)
        room = await self._require_room(connection, room_id)
        if room is None:
            return
        if await self._apply(connection, room, lambda: room.reconnect(player_id, connection.connection_id)):
            structlog.contextvars.bind_contextvars(room_id=room.room_id, player_id=player_id)

    async def leave(self, connection: ConnectionProtocol, room_id: str, player_id: str) -> None:
        """Remove a player for good. The room is deleted once it is empty."""
        room = await self._require_room(connection, room_id)
        if room is None:
            return
        await self._apply(connection, room, lambda: room.leave(player_id), sender=player_id)

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Mark players on this connection unreachable. Nobody is removed."""
        self._gateway.unregister(connection)
        for room in self._registry.find_by_connection(connection.connection_id):
            outcome = room.disconnect(connection.connection_id)
            await self._publish(room, outcome)

    # --- Lobby ---

    async def set_ready(self, connection: ConnectionProtocol, room_id: str, player_id: str, *, ready: bool) -> None:
        room = self._registry.get(room_id)
        if room is None or player_id not in room.players:
            return
        await self._apply(connection, room, lambda: room.set_ready(player_id, ready=ready), sender=player_id)

    async def update_role_settings(
        self,
        connection: ConnectionProtocol,
        room_id: str,
        player_id: str,
        settings: RoleSettings,
    ) -> None:
        room = await self._require_room(connection, room_id)
        if room is None:
            return
        await self._apply(
            connection,
            room,
            lambda: room.update_role_settings(player_id, settings),
            sender=player_id,
        )

    async def start_game(self, connection: ConnectionProtocol, room_id: str, player_id: str) -> None:
        room = await self._require_room(connection, room_id)
        if room is None:
            return
        await self._apply(connection, room, lambda: room.start_game(player_id), sender=player_id)

    # --- Rounds ---

    async def submit_night_action(
        self,
        connection: ConnectionProtocol,
        room_id: str,
        player_id: str,
        action_type: NightActionType,
        target_id: str,
    ) -> None:
        room = await self._require_room(connection, room_id)
        if room is None:
            return
        await self._apply(
            connection,
            room,
            lambda: room.submit_night_action(player_id, action_type, target_id),
            sender=player_id,
        )

    async def submit_day_vote(
        self,
        connection: ConnectionProtocol,
        room_id: str,
        player_id: str,
        target_id: str,
    ) -> None:
        room = await self._require_room(connection, room_id)
        if room is None:
            return
        await self._apply(connection, room, lambda: room.submit_day_vote(player_id, target_id), sender=player_id)

    async def chat(self, connection: ConnectionProtocol, room_id: str, player_id: str, text: str) -> None:
        room = await self._require_room(connection, room_id)
        if room is None:
            return
        await self._apply(connection, room, lambda: room.chat(player_id, text), sender=player_id)

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await self._gateway.send(connection, PongMessage().model_dump(mode="json"))

    # --- Deferred transitions ---

    async def _handle_deferred(self, room: GameRoom, transition: DeferredTransition) -> None:
        if not self._registry.holds(room):
            logger.debug("deferred transition for removed room", room_id=room.room_id, kind=transition.kind)
            return
        outcome = room.apply_deferred(transition)
        await self._publish(room, outcome)

    # --- Cleanup ---

    async def sweep(self, now: float | None = None) -> SweepReport:
        """Expire idle rooms and prune stale lobby players, then notify survivors."""
        report = self._registry.sweep(
            now,
            self._room_expiry_seconds,
            is_connected=self._gateway.is_connected,
            grace_window=self._player_grace_seconds,
        )
        for room_id in report.removed_rooms:
            self._scheduler.cancel_room(room_id)
        for room, events in report.events:
            await self._gateway.deliver(room, events)
        if report.removed_rooms or report.pruned_players:
            logger.info(
                "janitor sweep",
                removed_rooms=len(report.removed_rooms),
                pruned_players=sum(len(ids) for ids in report.pruned_players.values()),
            )
        return report

    async def shutdown(self) -> None:
        await self._scheduler.cancel_all()
