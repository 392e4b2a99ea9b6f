"""Win detection and game-over announcement."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mafia.logic.enums import Role, RoomStatus, Winner
from mafia.logic.events import GameOverEvent, RoleRevealEntry, RoleRevealEvent, broadcast
from mafia.logic.outcome import Outcome

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mafia.logic.room import GameRoom, Player


def evaluate_winner(players: Iterable[Player]) -> Winner | None:
    """Return the winning faction among living role-holders, or None.

    Spectators (no role) are ignored. No living Mafia means the village won;
    Mafia reaching parity with everyone else means the Mafia won.
    """
    living = [p for p in players if p.alive and p.role is not None]
    mafia_alive = sum(1 for p in living if p.role == Role.MAFIA)
    if mafia_alive == 0:
        return Winner.VILLAGERS
    if mafia_alive >= len(living) - mafia_alive:
        return Winner.MAFIA
    return None


def declare_winner(room: GameRoom, winner: Winner) -> Outcome:
    """Finish the game: announce the winner and reveal every role."""
    room.status = RoomStatus.FINISHED
    room.night_actions.clear()
    room.votes.clear()
    outcome = Outcome()
    outcome.events.append(room.set_phase(None))
    outcome.events.append(broadcast(GameOverEvent(winner=winner)))
    outcome.events.append(
        broadcast(
            RoleRevealEvent(
                players=[
                    RoleRevealEntry(player_id=p.player_id, name=p.name, role=p.role, alive=p.alive)
                    for p in room.players.values()
                    if p.role is not None
                ],
            ),
        ),
    )
    outcome.events.append(room.roster_event())
    return outcome
