"""Room registry: owns every live GameRoom, keyed by canonical room id."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from mafia.logic.events import ServiceEvent
from mafia.logic.exceptions import InvalidInputError, RoomNotFoundError
from mafia.logic.room import GameRoom, normalize_room_id
from mafia.logic.settings import GameRules

if TYPE_CHECKING:
    import random
    from collections.abc import Callable

logger = structlog.get_logger()

ROOM_EXPIRY_SECONDS = 300  # 5 minutes without a mutating command
PLAYER_GRACE_SECONDS = 120  # disconnected lobby players are pruned after this


@dataclass
class SweepReport:
    """What a sweep changed: removed room ids and events for rooms that survived."""

    removed_rooms: list[str] = field(default_factory=list)
    pruned_players: dict[str, list[str]] = field(default_factory=dict)  # room_id -> player_ids
    events: list[tuple[GameRoom, list[ServiceEvent]]] = field(default_factory=list)


class RoomRegistry:
    """Create, look up, expire and delete rooms.

    The registry is the only owner of the room table; the session layer and
    the janitor receive it by injection.
    """

    def __init__(self, rules: GameRules | None = None, rng: random.Random | None = None) -> None:
        self._rules = rules or GameRules()
        self._rng = rng
        self._rooms: dict[str, GameRoom] = {}

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def player_count(self) -> int:
        return sum(room.player_count for room in self._rooms.values())

    def rooms(self) -> list[GameRoom]:
        """Snapshot of all rooms, safe to iterate while rooms come and go."""
        return list(self._rooms.values())

    def get_or_create(self, room_id: str) -> GameRoom:
        key = normalize_room_id(room_id)
        if not key:
            raise InvalidInputError("Room id must not be empty")
        room = self._rooms.get(key)
        if room is None:
            room = GameRoom(room_id=key, rules=self._rules, rng=self._rng)
            self._rooms[key] = room
            logger.info("room created", room_id=key)
        return room

    def get(self, room_id: str) -> GameRoom | None:
        return self._rooms.get(normalize_room_id(room_id))

    def require(self, room_id: str) -> GameRoom:
        room = self.get(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {normalize_room_id(room_id)} does not exist")
        return room

    def holds(self, room: GameRoom) -> bool:
        """True if room is still the live room registered under its id."""
        return self._rooms.get(room.room_id) is room

    def remove(self, room_id: str) -> GameRoom | None:
        room = self._rooms.pop(normalize_room_id(room_id), None)
        if room is not None:
            logger.info("room removed", room_id=room.room_id)
        return room

    def find_by_connection(self, connection_id: str) -> list[GameRoom]:
        return [room for room in self.rooms() if room.players_on_connection(connection_id)]

    def sweep(
        self,
        now: float | None = None,
        expiry_window: float = ROOM_EXPIRY_SECONDS,
        *,
        is_connected: Callable[[str | None], bool],
        grace_window: float = PLAYER_GRACE_SECONDS,
    ) -> SweepReport:
        """Remove empty or idle rooms and prune stale disconnected lobby players.

        Pruning itself is GameRoom.prune_stale; the registry only deletes rooms
        that end up empty and collects the events for the survivors.
        """
        now = time.monotonic() if now is None else now
        report = SweepReport()

        for room in self.rooms():
            if not self.holds(room):
                continue
            if room.is_empty or now - room.last_active_at > expiry_window:
                self.remove(room.room_id)
                report.removed_rooms.append(room.room_id)
                continue
            pruned, outcome = room.prune_stale(now, is_connected, grace_window)
            if not pruned:
                continue
            report.pruned_players[room.room_id] = pruned
            if room.is_empty:
                self.remove(room.room_id)
                report.removed_rooms.append(room.room_id)
                continue
            report.events.append((room, outcome.events))

        return report
