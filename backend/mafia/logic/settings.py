"""Role configuration and per-room game rules."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from mafia.logic.enums import KillRule
from mafia.logic.exceptions import InvalidRoleSettingsError

MIN_PLAYERS = 3
MAX_PLAYERS = 20


class RoleSettings(BaseModel):
    """Configured counts of the special roles. Villagers fill the remainder."""

    model_config = ConfigDict(frozen=True)

    mafia_count: int = 1
    detective_count: int = 1
    doctor_count: int = 1

    @property
    def special_count(self) -> int:
        return self.mafia_count + self.detective_count + self.doctor_count

    def validate_for(self, player_count: int) -> None:
        """Raise InvalidRoleSettingsError unless the counts fit the headcount."""
        if self.mafia_count < 1:
            raise InvalidRoleSettingsError("At least one Mafia is required")
        if self.detective_count < 0 or self.doctor_count < 0:
            raise InvalidRoleSettingsError("Role counts cannot be negative")
        if self.special_count > player_count:
            raise InvalidRoleSettingsError(
                f"Role counts ({self.special_count}) exceed player count ({player_count})",
            )


def default_role_settings(player_count: int) -> RoleSettings:
    """Default distribution: one Mafia per four players, one Detective, one Doctor.

    Detective and Doctor are dropped (Doctor first) when the headcount
    cannot fit them, so the defaults are always valid for player_count >= 1.
    """
    mafia = max(1, player_count // 4)
    remaining = max(0, player_count - mafia)
    detective = min(1, remaining)
    doctor = min(1, remaining - detective)
    return RoleSettings(mafia_count=mafia, detective_count=detective, doctor_count=doctor)


class GameRules(BaseModel):
    """Timing and rule knobs shared by every room of a server."""

    model_config = ConfigDict(frozen=True)

    min_players: int = Field(default=MIN_PLAYERS, ge=MIN_PLAYERS)
    max_players: int = Field(default=MAX_PLAYERS, ge=MIN_PLAYERS)
    role_reveal_seconds: float = Field(default=3.0, ge=0)
    night_delay_seconds: float = Field(default=2.0, ge=0)
    kill_rule: KillRule = KillRule.INDEPENDENT
    chat_max_messages: int = Field(default=5, ge=1)
    chat_window_seconds: float = Field(default=10.0, gt=0)
