"""Deliver room events to the connections currently bound to players."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

import structlog

from mafia.logic.events import BroadcastTarget, PlayerTarget
from mafia.messaging.event_payload import service_event_payload

if TYPE_CHECKING:
    from mafia.logic.events import ServiceEvent
    from mafia.logic.room import GameRoom
    from mafia.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()


class NotificationGateway:
    """Tracks live connections and routes events to room members.

    Players hold only a connection id; the gateway resolves it at send time,
    so a player whose connection is gone is simply skipped. Send failures on
    one connection never prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection: ConnectionProtocol) -> None:
        current = self._connections.get(connection.connection_id)
        if current is connection:
            del self._connections[connection.connection_id]

    def get(self, connection_id: str | None) -> ConnectionProtocol | None:
        if connection_id is None:
            return None
        return self._connections.get(connection_id)

    def is_connected(self, connection_id: str | None) -> bool:
        return self.get(connection_id) is not None

    async def deliver(self, room: GameRoom, events: list[ServiceEvent]) -> None:
        """Send each event to its target, in order."""
        for event in events:
            message = service_event_payload(event)
            if isinstance(event.target, BroadcastTarget):
                await self.broadcast(room, message)
            elif isinstance(event.target, PlayerTarget):
                await self.send_to_player(room, event.target.player_id, message)

    async def broadcast(self, room: GameRoom, message: dict[str, Any]) -> None:
        # snapshot: a concurrent leave may mutate the dict while we await a send
        for player in list(room.players.values()):
            connection = self.get(player.connection_id)
            if connection is None:
                continue
            with contextlib.suppress(RuntimeError, OSError):
                await connection.send_message(message)

    async def send_to_player(self, room: GameRoom, player_id: str, message: dict[str, Any]) -> None:
        player = room.players.get(player_id)
        if player is None:
            return
        connection = self.get(player.connection_id)
        if connection is None:
            logger.debug("player unreachable", room_id=room.room_id, player_id=player_id, type=message.get("type"))
            return
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(message)

    async def send(self, connection: ConnectionProtocol, message: dict[str, Any]) -> None:
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(message)
