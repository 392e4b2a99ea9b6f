"""Role assignment for a starting game."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mafia.logic.enums import Role
from mafia.logic.exceptions import InvalidRoleSettingsError
from mafia.logic.rng import fisher_yates

if TYPE_CHECKING:
    import random
    from collections.abc import Sequence

    from mafia.logic.settings import RoleSettings


def build_role_pool(player_count: int, settings: RoleSettings) -> list[Role]:
    """Build the unshuffled role multiset for player_count players.

    Over-specified settings are a caller contract violation: start_game
    validates them first, so reaching this with too many roles is a bug.
    """
    if settings.special_count > player_count:
        raise InvalidRoleSettingsError(
            f"Cannot assign {settings.special_count} special roles to {player_count} players",
        )
    pool = (
        [Role.MAFIA] * settings.mafia_count
        + [Role.DETECTIVE] * settings.detective_count
        + [Role.DOCTOR] * settings.doctor_count
    )
    pool.extend([Role.VILLAGER] * (player_count - len(pool)))
    return pool


def assign_roles(
    player_ids: Sequence[str],
    settings: RoleSettings,
    rng: random.Random | None = None,
) -> dict[str, Role]:
    """Map every player id to exactly one role, shuffled without bias."""
    pool = fisher_yates(build_role_pool(len(player_ids), settings), rng)
    return dict(zip(player_ids, pool, strict=True))
