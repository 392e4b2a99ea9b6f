"""Domain event models and service event transport container.

Domain event classes are the canonical event types produced by the room
state machine. ServiceEvent is the transport wrapper that pairs an event
with its routing target: the whole room or a single player.

All layers import exclusively from this module for event types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mafia.logic.enums import EliminationCause, GamePhase, Role, RoomStatus, Winner
from mafia.logic.settings import RoleSettings

# ---------------------------------------------------------------------------
# Typed routing targets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BroadcastTarget:
    """Event should be sent to every player in the room."""


@dataclass(frozen=True)
class PlayerTarget:
    """Event should be sent to one player."""

    player_id: str


EventTarget = BroadcastTarget | PlayerTarget


# ---------------------------------------------------------------------------
# Event type enum
# ---------------------------------------------------------------------------


class EventType(StrEnum):
    """Types of room events."""

    ROOM_JOINED = "room_joined"
    ROSTER = "roster"
    HOST_CHANGED = "host_changed"
    GAME_STARTING = "game_starting"
    ROLE_ASSIGNED = "role_assigned"
    PHASE_CHANGED = "phase_changed"
    NIGHT_BEGINS = "night_begins"
    DAY_BEGINS = "day_begins"
    INVESTIGATION_RESULT = "investigation_result"
    VOTE_TALLY = "vote_tally"
    PLAYER_ELIMINATED = "player_eliminated"
    GAME_OVER = "game_over"
    ROLE_REVEAL = "role_reveal"
    RECONNECTED = "reconnected"
    CHAT = "chat"
    MAFIA_CHAT = "mafia_chat"


# ---------------------------------------------------------------------------
# Shared payload pieces
# ---------------------------------------------------------------------------


class PlayerInfo(BaseModel):
    """Public view of a player for roster messages. Never includes the role."""

    player_id: str
    name: str
    ready: bool
    alive: bool
    connected: bool
    is_host: bool


class MafiaMember(BaseModel):
    player_id: str
    name: str


class RoleRevealEntry(BaseModel):
    player_id: str
    name: str
    role: Role
    alive: bool


# ---------------------------------------------------------------------------
# Domain event models
# ---------------------------------------------------------------------------


class GameEvent(BaseModel):
    """Base class for all domain room events."""

    model_config = ConfigDict(frozen=True)

    type: EventType


class RoomJoinedEvent(GameEvent):
    """Sent to the joining player with its resolved id."""

    type: Literal[EventType.ROOM_JOINED] = EventType.ROOM_JOINED
    room_id: str
    player_id: str
    host_id: str
    reconnected: bool = False


class RosterEvent(GameEvent):
    """Broadcast whenever membership, readiness, host or settings change."""

    type: Literal[EventType.ROSTER] = EventType.ROSTER
    room_id: str
    status: RoomStatus
    phase: GamePhase | None
    host_id: str | None
    players: list[PlayerInfo]
    role_settings: RoleSettings


class HostChangedEvent(GameEvent):
    type: Literal[EventType.HOST_CHANGED] = EventType.HOST_CHANGED
    host_id: str
    host_name: str


class GameStartingEvent(GameEvent):
    type: Literal[EventType.GAME_STARTING] = EventType.GAME_STARTING
    player_count: int
    role_settings: RoleSettings


class RoleAssignedEvent(GameEvent):
    """Sent to each player with their role. Mafia also learn their teammates."""

    type: Literal[EventType.ROLE_ASSIGNED] = EventType.ROLE_ASSIGNED
    role: Role
    mafia_members: list[MafiaMember] = Field(default_factory=list)


class PhaseChangedEvent(GameEvent):
    type: Literal[EventType.PHASE_CHANGED] = EventType.PHASE_CHANGED
    phase: GamePhase | None
    day_number: int


class NightBeginsEvent(GameEvent):
    type: Literal[EventType.NIGHT_BEGINS] = EventType.NIGHT_BEGINS
    day_number: int


class DayBeginsEvent(GameEvent):
    type: Literal[EventType.DAY_BEGINS] = EventType.DAY_BEGINS
    day_number: int
    killed: list[str]


class InvestigationResultEvent(GameEvent):
    type: Literal[EventType.INVESTIGATION_RESULT] = EventType.INVESTIGATION_RESULT
    target_id: str
    target_name: str
    role: Role


class VoteTallyEvent(GameEvent):
    type: Literal[EventType.VOTE_TALLY] = EventType.VOTE_TALLY
    tally: dict[str, int]
    votes_cast: int
    votes_needed: int


class PlayerEliminatedEvent(GameEvent):
    type: Literal[EventType.PLAYER_ELIMINATED] = EventType.PLAYER_ELIMINATED
    player_id: str
    name: str
    role: Role
    cause: EliminationCause
    votes: int | None = None


class GameOverEvent(GameEvent):
    type: Literal[EventType.GAME_OVER] = EventType.GAME_OVER
    winner: Winner


class RoleRevealEvent(GameEvent):
    type: Literal[EventType.ROLE_REVEAL] = EventType.ROLE_REVEAL
    players: list[RoleRevealEntry]


class ReconnectedEvent(GameEvent):
    """State snapshot sent to a player who rebinds to their seat."""

    type: Literal[EventType.RECONNECTED] = EventType.RECONNECTED
    room_id: str
    player_id: str
    host_id: str
    status: RoomStatus
    phase: GamePhase | None
    day_number: int
    role: Role | None
    alive: bool
    mafia_members: list[MafiaMember] = Field(default_factory=list)


class ChatEvent(GameEvent):
    type: Literal[EventType.CHAT] = EventType.CHAT
    player_id: str
    name: str
    text: str


class MafiaChatEvent(GameEvent):
    type: Literal[EventType.MAFIA_CHAT] = EventType.MAFIA_CHAT
    player_id: str
    name: str
    text: str


# ---------------------------------------------------------------------------
# Service event transport container
# ---------------------------------------------------------------------------


class ServiceEvent(BaseModel):
    """Event transport container pairing a domain event with its target."""

    model_config = {"arbitrary_types_allowed": True}

    event: EventType
    data: GameEvent
    target: EventTarget = BroadcastTarget()

    @model_validator(mode="after")
    def _ensure_event_matches_data(self) -> ServiceEvent:
        if self.event != self.data.type:
            raise ValueError(f"ServiceEvent.event '{self.event}' does not match data.type '{self.data.type}'")
        return self


def broadcast(data: GameEvent) -> ServiceEvent:
    return ServiceEvent(event=data.type, data=data, target=BroadcastTarget())


def to_player(player_id: str, data: GameEvent) -> ServiceEvent:
    return ServiceEvent(event=data.type, data=data, target=PlayerTarget(player_id=player_id))
