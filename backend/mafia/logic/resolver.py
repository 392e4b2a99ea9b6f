"""Resolution of completed night-action and day-vote rounds.

Both entry points are invoked synchronously by GameRoom once every eligible
player has acted. They mutate the room in place (liveness, phase, pending
actions) and return the events to deliver. Win detection runs after every
resolution, whether or not anyone was eliminated.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

import structlog

from mafia.logic.enums import DeferredKind, EliminationCause, GamePhase, KillRule, NightActionType, Role
from mafia.logic.events import DayBeginsEvent, PlayerEliminatedEvent, broadcast
from mafia.logic.outcome import DeferredTransition, Outcome
from mafia.logic.win import declare_winner, evaluate_winner

if TYPE_CHECKING:
    from mafia.logic.room import GameRoom, Player

logger = structlog.get_logger()


def _targets_of(room: GameRoom, role: Role, action_type: NightActionType) -> list[str]:
    """Targets chosen by living players of the given role, in submission order."""
    targets = []
    for actor_id, action in room.night_actions.items():
        actor = room.players.get(actor_id)
        if actor is None or not actor.alive or actor.role != role:
            continue
        if action.action_type == action_type:
            targets.append(action.target_id)
    return targets


def kill_candidates(kill_targets: list[str], rule: KillRule) -> set[str]:
    """Combine individual Mafia choices into the set of players marked to die."""
    if rule == KillRule.INDEPENDENT:
        return set(kill_targets)
    counts = Counter(kill_targets)
    if not counts:
        return set()
    top = max(counts.values())
    leaders = [target for target, count in counts.items() if count == top]
    return set(leaders) if len(leaders) == 1 else set()


def _eliminate(player: Player, cause: EliminationCause, votes: int | None = None) -> PlayerEliminatedEvent:
    player.alive = False
    return PlayerEliminatedEvent(
        player_id=player.player_id,
        name=player.name,
        role=player.role,
        cause=cause,
        votes=votes,
    )


def _finish_if_won(room: GameRoom, outcome: Outcome) -> bool:
    """Declare the winner if there is one. Return True when the game ended."""
    winner = evaluate_winner(room.players.values())
    if winner is None:
        return False
    logger.info("game finished", room_id=room.room_id, winner=winner)
    outcome.extend(declare_winner(room, winner))
    return True


def resolve_night(room: GameRoom) -> Outcome:
    """Apply kills and saves, then move the room to day."""
    candidates = kill_candidates(_targets_of(room, Role.MAFIA, NightActionType.KILL), room.rules.kill_rule)
    saves = set(_targets_of(room, Role.DOCTOR, NightActionType.SAVE))

    outcome = Outcome()
    killed: list[str] = []
    # iterate players rather than the set so elimination order is stable
    for player in list(room.players.values()):
        if player.player_id in candidates and player.player_id not in saves and player.alive:
            outcome.events.append(broadcast(_eliminate(player, EliminationCause.NIGHT)))
            killed.append(player.name)

    logger.info(
        "night resolved",
        room_id=room.room_id,
        day_number=room.day_number,
        killed=killed,
        saved=len(candidates & saves),
    )

    room.night_actions.clear()
    room.votes.clear()
    outcome.events.append(room.set_phase(GamePhase.DAY))
    outcome.events.append(broadcast(DayBeginsEvent(day_number=room.day_number, killed=killed)))
    _finish_if_won(room, outcome)
    return outcome


def resolve_day(room: GameRoom) -> Outcome:
    """Tally votes, eliminate a unique leader, then move the room to night.

    Ties protect the accused: nobody is eliminated when two or more
    targets share the highest tally.
    """
    tally = Counter(room.votes.values())
    outcome = Outcome()

    if tally:
        top = max(tally.values())
        leaders = [target for target, count in tally.items() if count == top]
        if len(leaders) == 1:
            target = room.players.get(leaders[0])
            if target is not None and target.alive:
                outcome.events.append(broadcast(_eliminate(target, EliminationCause.VOTE, votes=top)))
        else:
            logger.info("vote tied, nobody eliminated", room_id=room.room_id, leaders=leaders, votes=top)

    room.votes.clear()
    room.night_actions.clear()
    room.day_number += 1
    outcome.events.append(room.set_phase(GamePhase.NIGHT))

    if not _finish_if_won(room, outcome):
        outcome.deferred.append(
            DeferredTransition(
                kind=DeferredKind.ANNOUNCE_NIGHT,
                delay=room.rules.night_delay_seconds,
                phase_stamp=room.phase_stamp,
            ),
        )
    return outcome
