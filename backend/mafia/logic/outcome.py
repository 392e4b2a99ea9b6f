"""Result type shared by room operations and the resolver.

Room operations never perform I/O. They mutate the room and return an
Outcome: the events to deliver and any phase transitions that must run
after a delay. SessionManager delivers the former and schedules the latter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple

from mafia.logic.enums import DeferredKind
from mafia.logic.events import ServiceEvent


class DeferredTransition(NamedTuple):
    """A delayed phase transition, valid only while phase_stamp is unchanged."""

    kind: DeferredKind
    delay: float
    phase_stamp: int


@dataclass
class Outcome:
    events: list[ServiceEvent] = field(default_factory=list)
    deferred: list[DeferredTransition] = field(default_factory=list)

    def extend(self, other: Outcome) -> None:
        self.events.extend(other.events)
        self.deferred.extend(other.deferred)
