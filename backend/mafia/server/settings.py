"""Mafia server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from mafia.logic.enums import KillRule
from mafia.logic.settings import GameRules
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class MafiaServerSettings(BaseSettings):
    model_config = {"env_prefix": "MAFIA_"}

    max_rooms: int = Field(default=100, ge=1)
    log_dir: str = Field(default="backend/logs/mafia", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]
    room_expiry_seconds: int = Field(default=300, ge=30)
    player_grace_seconds: int = Field(default=120, ge=0)
    janitor_interval_seconds: int = Field(default=30, ge=30, le=60)
    role_reveal_seconds: float = Field(default=3.0, ge=0)
    night_delay_seconds: float = Field(default=2.0, ge=0)
    kill_rule: KillRule = KillRule.INDEPENDENT

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    def game_rules(self) -> GameRules:
        return GameRules(
            role_reveal_seconds=self.role_reveal_seconds,
            night_delay_seconds=self.night_delay_seconds,
            kill_rule=self.kill_rule,
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
