"""
String enum definitions for Mafia game concepts.
"""

from enum import StrEnum


class Role(StrEnum):
    """Hidden role assigned to a player at game start."""

    MAFIA = "mafia"
    DETECTIVE = "detective"
    DOCTOR = "doctor"
    VILLAGER = "villager"


class Winner(StrEnum):
    """Faction that won the game."""

    VILLAGERS = "villagers"
    MAFIA = "mafia"


class RoomStatus(StrEnum):
    """Coarse lifecycle of a room."""

    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class GamePhase(StrEnum):
    """Fine-grained phase of a game in progress."""

    ROLE_REVEAL = "role_reveal"
    NIGHT = "night"
    DAY = "day"


class NightActionType(StrEnum):
    """Targeted actions available during the night."""

    KILL = "kill"
    SAVE = "save"
    INVESTIGATE = "investigate"


class EliminationCause(StrEnum):
    NIGHT = "night"
    VOTE = "vote"


class KillRule(StrEnum):
    """How simultaneous Mafia kill choices are combined.

    INDEPENDENT: every distinct Mafia-chosen target is a candidate kill.
    CONSENSUS: only the single most-chosen target is a candidate; ties kill nobody.
    """

    INDEPENDENT = "independent"
    CONSENSUS = "consensus"


class DeferredKind(StrEnum):
    """Phase transitions that run after a fixed delay."""

    BEGIN_NIGHT = "begin_night"
    ANNOUNCE_NIGHT = "announce_night"


# role -> the one night action it may submit
ROLE_NIGHT_ACTION: dict[Role, NightActionType] = {
    Role.MAFIA: NightActionType.KILL,
    Role.DOCTOR: NightActionType.SAVE,
    Role.DETECTIVE: NightActionType.INVESTIGATE,
}
