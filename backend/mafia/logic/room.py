"""Room state machine: membership, readiness, game start and round collection.

GameRoom is the only place room state changes. Every operation is
synchronous and completes without awaiting, so no other command can observe
a half-applied mutation. Operations raise a GameRuleError subclass before
touching any state when a precondition fails; on success they return an
Outcome with the events to deliver and any delayed phase transitions.

Lifecycle: waiting -> playing (role_reveal -> night <-> day) -> finished.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from mafia.logic.chat import ChatRateLimiter, sanitize_chat_text, sanitize_name
from mafia.logic.enums import (
    ROLE_NIGHT_ACTION,
    DeferredKind,
    GamePhase,
    NightActionType,
    Role,
    RoomStatus,
)
from mafia.logic.events import (
    ChatEvent,
    GameStartingEvent,
    HostChangedEvent,
    InvestigationResultEvent,
    MafiaChatEvent,
    MafiaMember,
    NightBeginsEvent,
    PhaseChangedEvent,
    PlayerInfo,
    ReconnectedEvent,
    RoleAssignedEvent,
    RoomJoinedEvent,
    RosterEvent,
    ServiceEvent,
    VoteTallyEvent,
    broadcast,
    to_player,
)
from mafia.logic.exceptions import (
    DuplicateActionError,
    InsufficientPlayersError,
    InvalidInputError,
    NotAllReadyError,
    NotHostError,
    PlayerNotFoundError,
    WrongPhaseError,
    WrongStatusError,
)
from mafia.logic.outcome import DeferredTransition, Outcome
from mafia.logic.resolver import resolve_day, resolve_night
from mafia.logic.roles import assign_roles
from mafia.logic.settings import GameRules, RoleSettings, default_role_settings
from mafia.logic.win import declare_winner, evaluate_winner

if TYPE_CHECKING:
    import random
    from collections.abc import Callable

logger = structlog.get_logger()


def normalize_room_id(room_id: str) -> str:
    """Canonical room key: trimmed and upper-cased."""
    return room_id.strip().upper()


@dataclass
class NightAction:
    action_type: NightActionType
    target_id: str


@dataclass
class Player:
    """A member of a room.

    Lifecycle:
    - Created on first join; player_id is stable across reconnects
    - connection_id and name are overwritten on reconnect (last reconnect wins)
    - Removed only by an explicit leave, a janitor prune (lobby only) or room deletion;
      a disconnect just clears `connected`
    """

    player_id: str
    connection_id: str | None
    name: str
    role: Role | None = None
    alive: bool = True
    ready: bool = False
    connected: bool = True
    last_active_at: float = field(default_factory=time.monotonic)


@dataclass
class GameRoom:
    room_id: str
    rules: GameRules = field(default_factory=GameRules)
    players: dict[str, Player] = field(default_factory=dict)  # player_id -> Player, insertion ordered
    host_id: str | None = None
    status: RoomStatus = RoomStatus.WAITING
    phase: GamePhase | None = None
    role_settings: RoleSettings | None = None  # None -> defaults for the current headcount
    night_actions: dict[str, NightAction] = field(default_factory=dict)  # actor_id -> action
    votes: dict[str, str] = field(default_factory=dict)  # voter_id -> target_id
    day_number: int = 0
    phase_stamp: int = 0
    last_active_at: float = field(default_factory=time.monotonic)
    rng: random.Random | None = field(default=None, repr=False)
    chat_limiter: ChatRateLimiter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.chat_limiter = ChatRateLimiter(self.rules.chat_max_messages, self.rules.chat_window_seconds)

    # --- Queries ---

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    @property
    def all_ready(self) -> bool:
        return all(p.ready for p in self.players.values())

    @property
    def alive_players(self) -> list[Player]:
        return [p for p in self.players.values() if p.alive and p.role is not None]

    @property
    def actors_needed(self) -> int:
        """Living players whose role has a night action."""
        return sum(1 for p in self.alive_players if p.role in ROLE_NIGHT_ACTION)

    @property
    def effective_role_settings(self) -> RoleSettings:
        if self.role_settings is not None:
            return self.role_settings
        return default_role_settings(self.player_count)

    def require_player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise PlayerNotFoundError(f"Player {player_id} is not in room {self.room_id}")
        return player

    def require_sender(self, player_id: str, connection_id: str) -> Player:
        """Resolve a player and check the command came over that player's own connection."""
        player = self.require_player(player_id)
        if player.connection_id != connection_id:
            raise PlayerNotFoundError(f"Player {player_id} is not bound to this connection")
        return player

    def players_on_connection(self, connection_id: str) -> list[Player]:
        return [p for p in self.players.values() if p.connection_id == connection_id]

    def mafia_members(self) -> list[MafiaMember]:
        return [
            MafiaMember(player_id=p.player_id, name=p.name) for p in self.players.values() if p.role == Role.MAFIA
        ]

    # --- Event builders ---

    def touch(self, now: float | None = None) -> None:
        self.last_active_at = time.monotonic() if now is None else now

    def set_phase(self, phase: GamePhase | None) -> ServiceEvent:
        """Change phase, invalidate pending deferred transitions, and describe the change."""
        self.phase = phase
        self.phase_stamp += 1
        return broadcast(PhaseChangedEvent(phase=phase, day_number=self.day_number))

    def roster_event(self) -> ServiceEvent:
        return broadcast(
            RosterEvent(
                room_id=self.room_id,
                status=self.status,
                phase=self.phase,
                host_id=self.host_id,
                players=[
                    PlayerInfo(
                        player_id=p.player_id,
                        name=p.name,
                        ready=p.ready,
                        alive=p.alive,
                        connected=p.connected,
                        is_host=p.player_id == self.host_id,
                    )
                    for p in self.players.values()
                ],
                role_settings=self.effective_role_settings,
            ),
        )

    def _snapshot_for(self, player: Player) -> ReconnectedEvent:
        return ReconnectedEvent(
            room_id=self.room_id,
            player_id=player.player_id,
            host_id=self.host_id or player.player_id,
            status=self.status,
            phase=self.phase,
            day_number=self.day_number,
            role=player.role,
            alive=player.alive,
            mafia_members=self.mafia_members() if player.role == Role.MAFIA else [],
        )

    # --- Membership ---

    def join(self, name: str | None, connection_id: str, player_id: str | None = None) -> tuple[Player, Outcome]:
        """Add a player, or rebind an existing one when player_id is known.

        A rebind only updates the connection and the display name; ready,
        role and alive are preserved so a player can resume mid-game.
        Players who are new to a room whose game already started join as
        spectators: not alive and without a role.
        """
        clean_name = sanitize_name(name)
        existing = self.players.get(player_id) if player_id else None
        if existing is not None:
            existing.name = clean_name
            return existing, self._rebind(existing, connection_id)

        if self.player_count >= self.rules.max_players:
            raise InvalidInputError(f"Room {self.room_id} is full")

        spectator = self.status != RoomStatus.WAITING
        player = Player(
            player_id=uuid4().hex,
            connection_id=connection_id,
            name=clean_name,
            alive=not spectator,
        )
        self.players[player.player_id] = player
        if self.host_id is None:
            self.host_id = player.player_id
        self.touch()
        logger.info(
            "player joined",
            room_id=self.room_id,
            player_id=player.player_id,
            spectator=spectator,
            player_count=self.player_count,
        )

        outcome = Outcome()
        outcome.events.append(
            to_player(
                player.player_id,
                RoomJoinedEvent(room_id=self.room_id, player_id=player.player_id, host_id=self.host_id),
            ),
        )
        outcome.events.append(self.roster_event())
        return player, outcome

    def reconnect(self, player_id: str, connection_id: str) -> Outcome:
        """Rebind a known player to a new connection. The latest connection wins."""
        return self._rebind(self.require_player(player_id), connection_id)

    def _rebind(self, player: Player, connection_id: str) -> Outcome:
        previous = player.connection_id
        player.connection_id = connection_id
        player.connected = True
        player.last_active_at = time.monotonic()
        self.touch()
        logger.info(
            "player reconnected",
            room_id=self.room_id,
            player_id=player.player_id,
            replaced_connection=previous is not None and previous != connection_id,
        )

        outcome = Outcome()
        outcome.events.append(
            to_player(
                player.player_id,
                RoomJoinedEvent(
                    room_id=self.room_id,
                    player_id=player.player_id,
                    host_id=self.host_id or player.player_id,
                    reconnected=True,
                ),
            ),
        )
        outcome.events.append(to_player(player.player_id, self._snapshot_for(player)))
        outcome.events.append(self.roster_event())
        return outcome

    def leave(self, player_id: str) -> Outcome:
        """Remove a player entirely, handing the host role to the oldest remaining player.

        When the room empties the caller is expected to delete it. During a game
        the leaver's pending action and vote (and votes or actions aimed at them)
        are discarded, then round completion and the win condition are re-checked.
        """
        if self._detach(player_id) is None:
            raise PlayerNotFoundError(f"Player {player_id} is not in room {self.room_id}")
        self.touch()
        logger.info("player left", room_id=self.room_id, player_id=player_id, player_count=self.player_count)

        outcome = Outcome(events=self._reassign_host())
        if self.is_empty:
            return outcome

        if self.status == RoomStatus.PLAYING:
            self._forget_round_entries(player_id)
            outcome.events.append(self.roster_event())
            outcome.extend(self._recheck_after_departure())
            return outcome

        outcome.events.append(self.roster_event())
        return outcome

    def prune_stale(
        self,
        now: float,
        is_connected: Callable[[str | None], bool],
        grace_window: float,
    ) -> tuple[list[str], Outcome]:
        """Drop lobby players whose connection is gone and who idled past grace_window.

        Returns the pruned ids and the events for the survivors. Running games
        are left alone; their players keep their seats until they leave.
        """
        if self.status != RoomStatus.WAITING:
            return [], Outcome()
        stale = [
            p.player_id
            for p in self.players.values()
            if not is_connected(p.connection_id) and now - p.last_active_at > grace_window
        ]
        if not stale:
            return [], Outcome()
        for player_id in stale:
            self._detach(player_id)
        logger.info("pruned stale players", room_id=self.room_id, player_ids=stale)

        outcome = Outcome(events=self._reassign_host())
        if not self.is_empty:
            outcome.events.append(self.roster_event())
        return stale, outcome

    def _detach(self, player_id: str) -> Player | None:
        player = self.players.pop(player_id, None)
        if player is not None:
            self.chat_limiter.forget(player_id)
        return player

    def _reassign_host(self) -> list[ServiceEvent]:
        """Hand the host role to the oldest remaining player once the host is gone."""
        if self.host_id in self.players:
            return []
        self.host_id = next(iter(self.players), None)
        if self.host_id is None:
            return []
        host = self.players[self.host_id]
        return [broadcast(HostChangedEvent(host_id=host.player_id, host_name=host.name))]

    def _forget_round_entries(self, player_id: str) -> None:
        # investigations were answered on submission, so they stay counted
        self.night_actions.pop(player_id, None)
        self.votes.pop(player_id, None)
        for actor_id in [
            a
            for a, action in self.night_actions.items()
            if action.target_id == player_id and action.action_type != NightActionType.INVESTIGATE
        ]:
            del self.night_actions[actor_id]
        for voter_id in [v for v, target in self.votes.items() if target == player_id]:
            del self.votes[voter_id]

    def _recheck_after_departure(self) -> Outcome:
        winner = evaluate_winner(self.players.values())
        if winner is not None:
            logger.info("game finished after departure", room_id=self.room_id, winner=winner)
            return declare_winner(self, winner)
        if self.phase == GamePhase.NIGHT and self.night_actions and len(self.night_actions) >= self.actors_needed:
            return resolve_night(self)
        if self.phase == GamePhase.DAY and self.votes and len(self.votes) >= len(self.alive_players):
            return resolve_day(self)
        return Outcome()

    def disconnect(self, connection_id: str) -> Outcome:
        """Mark every player on this connection as unreachable. Never removes anyone."""
        affected = self.players_on_connection(connection_id)
        if not affected:
            return Outcome()
        now = time.monotonic()
        for player in affected:
            player.connected = False
            player.last_active_at = now
        self.touch(now)
        logger.info(
            "player disconnected",
            room_id=self.room_id,
            player_ids=[p.player_id for p in affected],
        )
        return Outcome(events=[self.roster_event()])

    # --- Lobby ---

    def set_ready(self, player_id: str, *, ready: bool) -> Outcome:
        """Toggle readiness in the lobby. Unknown players are ignored."""
        player = self.players.get(player_id)
        if player is None:
            return Outcome()
        if self.status != RoomStatus.WAITING:
            raise WrongStatusError("Ready state can only change in the lobby")
        player.ready = ready
        self.touch()
        return Outcome(events=[self.roster_event()])

    def _require_host(self, player_id: str) -> None:
        if player_id != self.host_id:
            raise NotHostError("Only the host can do that")

    def update_role_settings(self, player_id: str, settings: RoleSettings) -> Outcome:
        self._require_host(player_id)
        if self.status != RoomStatus.WAITING:
            raise WrongStatusError("Role settings can only change in the lobby")
        settings.validate_for(self.player_count)
        self.role_settings = settings
        self.touch()
        logger.info("role settings updated", room_id=self.room_id, settings=settings.model_dump())
        return Outcome(events=[self.roster_event()])

    def start_game(self, player_id: str) -> Outcome:
        """Assign roles and enter role reveal; night begins after a short delay."""
        self._require_host(player_id)
        if self.status != RoomStatus.WAITING:
            raise WrongStatusError("The game has already started")
        if self.player_count < self.rules.min_players:
            raise InsufficientPlayersError(f"At least {self.rules.min_players} players are needed to start")
        if not self.all_ready:
            raise NotAllReadyError("Every player must be ready")
        settings = self.effective_role_settings
        settings.validate_for(self.player_count)

        roles = assign_roles(list(self.players), settings, self.rng)
        for pid, role in roles.items():
            self.players[pid].role = role
            self.players[pid].alive = True
        self.status = RoomStatus.PLAYING
        self.day_number = 1
        self.night_actions.clear()
        self.votes.clear()
        self.touch()
        logger.info("game started", room_id=self.room_id, player_count=self.player_count)

        outcome = Outcome()
        outcome.events.append(
            broadcast(GameStartingEvent(player_count=self.player_count, role_settings=settings)),
        )
        outcome.events.append(self.set_phase(GamePhase.ROLE_REVEAL))
        mafia = self.mafia_members()
        for player in self.players.values():
            teammates = [m for m in mafia if m.player_id != player.player_id] if player.role == Role.MAFIA else []
            outcome.events.append(
                to_player(player.player_id, RoleAssignedEvent(role=player.role, mafia_members=teammates)),
            )
        outcome.events.append(self.roster_event())
        outcome.deferred.append(
            DeferredTransition(
                kind=DeferredKind.BEGIN_NIGHT,
                delay=self.rules.role_reveal_seconds,
                phase_stamp=self.phase_stamp,
            ),
        )
        return outcome

    # --- Rounds ---

    def _require_playing(self, phase: GamePhase) -> None:
        if self.status != RoomStatus.PLAYING:
            raise WrongStatusError("No game is in progress")
        if self.phase != phase:
            raise WrongPhaseError(f"That is only allowed during the {phase.value} phase")

    def _require_living_target(self, target_id: str) -> Player:
        target = self.players.get(target_id)
        if target is None or not target.alive or target.role is None:
            raise InvalidInputError("Target must be a living player")
        return target

    def submit_night_action(self, player_id: str, action_type: NightActionType, target_id: str) -> Outcome:
        """Record one night action per living role-holder.

        Investigations are answered immediately and privately. Once every
        living player with a night action has acted, the night resolves.
        """
        actor = self.require_player(player_id)
        self._require_playing(GamePhase.NIGHT)
        if not actor.alive:
            raise InvalidInputError("Eliminated players cannot act")
        allowed = ROLE_NIGHT_ACTION.get(actor.role)
        if allowed is None:
            raise InvalidInputError("Your role has no night action")
        if action_type != allowed:
            raise InvalidInputError(f"Your role can only {allowed.value}")
        if player_id in self.night_actions:
            raise DuplicateActionError("You already acted this night")
        target = self._require_living_target(target_id)
        if target_id == player_id and action_type != NightActionType.SAVE:
            raise InvalidInputError("You cannot target yourself")

        self.night_actions[player_id] = NightAction(action_type=action_type, target_id=target_id)
        actor.last_active_at = time.monotonic()
        self.touch()
        logger.info(
            "night action recorded",
            room_id=self.room_id,
            player_id=player_id,
            action=action_type,
            received=len(self.night_actions),
            needed=self.actors_needed,
        )

        outcome = Outcome()
        if action_type == NightActionType.INVESTIGATE:
            outcome.events.append(
                to_player(
                    player_id,
                    InvestigationResultEvent(target_id=target.player_id, target_name=target.name, role=target.role),
                ),
            )
        if len(self.night_actions) >= self.actors_needed:
            outcome.extend(resolve_night(self))
        return outcome

    def submit_day_vote(self, player_id: str, target_id: str) -> Outcome:
        """Record or overwrite a living player's vote; resolve once everyone alive voted."""
        voter = self.require_player(player_id)
        self._require_playing(GamePhase.DAY)
        if not voter.alive:
            raise InvalidInputError("Eliminated players cannot vote")
        self._require_living_target(target_id)

        self.votes[player_id] = target_id
        voter.last_active_at = time.monotonic()
        self.touch()

        alive_count = len(self.alive_players)
        tally: dict[str, int] = {}
        for target in self.votes.values():
            tally[target] = tally.get(target, 0) + 1

        outcome = Outcome()
        outcome.events.append(
            broadcast(VoteTallyEvent(tally=tally, votes_cast=len(self.votes), votes_needed=alive_count)),
        )
        if len(self.votes) >= alive_count:
            outcome.extend(resolve_day(self))
        return outcome

    def apply_deferred(self, transition: DeferredTransition) -> Outcome:
        """Run a delayed transition if nothing has changed since it was scheduled."""
        if self.status != RoomStatus.PLAYING or transition.phase_stamp != self.phase_stamp:
            logger.debug("stale deferred transition skipped", room_id=self.room_id, kind=transition.kind)
            return Outcome()

        outcome = Outcome()
        if transition.kind == DeferredKind.BEGIN_NIGHT and self.phase == GamePhase.ROLE_REVEAL:
            self.night_actions.clear()
            outcome.events.append(self.set_phase(GamePhase.NIGHT))
            outcome.events.append(broadcast(NightBeginsEvent(day_number=self.day_number)))
        elif transition.kind == DeferredKind.ANNOUNCE_NIGHT and self.phase == GamePhase.NIGHT:
            outcome.events.append(broadcast(NightBeginsEvent(day_number=self.day_number)))
        return outcome

    # --- Chat ---

    def chat(self, player_id: str, text: str, now: float | None = None) -> Outcome:
        """Room chat; at night during a game only living Mafia talk, among themselves."""
        player = self.require_player(player_id)
        clean = sanitize_chat_text(text)
        mafia_only = False
        if self.status == RoomStatus.PLAYING:
            if not player.alive:
                raise InvalidInputError("Eliminated players cannot chat")
            if self.phase == GamePhase.NIGHT:
                if player.role != Role.MAFIA:
                    raise WrongPhaseError("Only the Mafia can talk at night")
                mafia_only = True
        self.chat_limiter.check(player_id, now)
        self.touch()

        if not mafia_only:
            return Outcome(events=[broadcast(ChatEvent(player_id=player_id, name=player.name, text=clean))])
        message = MafiaChatEvent(player_id=player_id, name=player.name, text=clean)
        return Outcome(
            events=[to_player(p.player_id, message) for p in self.alive_players if p.role == Role.MAFIA],
        )
