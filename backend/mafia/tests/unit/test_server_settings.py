import pytest
from pydantic import ValidationError

from mafia.logic.enums import KillRule
from mafia.server.settings import MafiaServerSettings


class TestMafiaServerSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MAFIA_CORS_ORIGINS", raising=False)
        monkeypatch.delenv("MAFIA_LOG_DIR", raising=False)
        settings = MafiaServerSettings()
        assert settings.room_expiry_seconds == 300
        assert settings.player_grace_seconds == 120
        assert settings.janitor_interval_seconds == 30
        assert settings.kill_rule == KillRule.INDEPENDENT

    def test_cors_origins_from_comma_separated_env(self, monkeypatch):
        monkeypatch.setenv("MAFIA_CORS_ORIGINS", "http://a.test, http://b.test")
        assert MafiaServerSettings().cors_origins == ["http://a.test", "http://b.test"]

    def test_cors_origins_from_json_env(self, monkeypatch):
        monkeypatch.setenv("MAFIA_CORS_ORIGINS", '["http://a.test"]')
        assert MafiaServerSettings().cors_origins == ["http://a.test"]

    def test_kill_rule_from_env(self, monkeypatch):
        monkeypatch.setenv("MAFIA_KILL_RULE", "consensus")
        settings = MafiaServerSettings()
        assert settings.kill_rule == KillRule.CONSENSUS
        assert settings.game_rules().kill_rule == KillRule.CONSENSUS

    def test_janitor_interval_bounds(self):
        with pytest.raises(ValidationError):
            MafiaServerSettings(janitor_interval_seconds=5)
        with pytest.raises(ValidationError):
            MafiaServerSettings(janitor_interval_seconds=120)

    def test_game_rules_carry_timings(self):
        rules = MafiaServerSettings(role_reveal_seconds=1.0, night_delay_seconds=0.5).game_rules()
        assert (rules.role_reveal_seconds, rules.night_delay_seconds) == (1.0, 0.5)
