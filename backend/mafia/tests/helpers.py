"""Builders for rooms in a known state."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from mafia.logic.room import GameRoom
from mafia.logic.settings import GameRules
from mafia.messaging.encoder import decode, encode

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mafia.logic.enums import Role
    from mafia.logic.events import EventType, GameEvent, ServiceEvent
    from mafia.logic.outcome import Outcome


def make_room(
    player_count: int = 3,
    *,
    room_id: str = "R1",
    rules: GameRules | None = None,
) -> tuple[GameRoom, list[str]]:
    """Create a waiting room with player_count players named P1..Pn on connections conn-1..conn-n."""
    room = GameRoom(room_id=room_id, rules=rules or GameRules(), rng=random.Random(3))
    ids = []
    for i in range(1, player_count + 1):
        player, _ = room.join(f"P{i}", f"conn-{i}")
        ids.append(player.player_id)
    return room, ids


def ready_all(room: GameRoom) -> None:
    for player_id in list(room.players):
        room.set_ready(player_id, ready=True)


def start_game(room: GameRoom, roles: Sequence[Role] | None = None) -> Outcome:
    """Ready everyone and start. When roles are given they replace the random assignment in join order."""
    ready_all(room)
    outcome = room.start_game(room.host_id)
    if roles is not None:
        for player, role in zip(room.players.values(), roles, strict=True):
            player.role = role
    return outcome


def start_night(room: GameRoom, roles: Sequence[Role] | None = None) -> Outcome:
    """Start a game and run the role-reveal transition so the room is at night."""
    outcome = start_game(room, roles)
    return room.apply_deferred(outcome.deferred[0])


def event_types(events: Sequence[ServiceEvent]) -> list[EventType]:
    return [e.event for e in events]


def events_of(events: Sequence[ServiceEvent], event_type: EventType) -> list[GameEvent]:
    return [e.data for e in events if e.event == event_type]


def send_ws(ws, data: dict) -> None:
    """Send a MessagePack-encoded message over a test WebSocket."""
    ws.send_bytes(encode(data))


def recv_ws(ws) -> dict:
    """Receive and decode a MessagePack message from a test WebSocket."""
    return decode(ws.receive_bytes())


def recv_until(ws, message_type: str, limit: int = 50) -> list[dict]:
    """Receive messages up to and including the first one of message_type."""
    messages = []
    for _ in range(limit):
        message = recv_ws(ws)
        messages.append(message)
        if message.get("type") == message_type:
            return messages
    raise AssertionError(f"no {message_type} message within {limit} messages")
