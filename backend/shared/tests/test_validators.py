import pytest
from pydantic import field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from shared.validators import StringListEnvSettingsSource, parse_string_list


class TestParseStringList:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ('["http://a.test","http://b.test"]', ["http://a.test", "http://b.test"]),
            ("http://a.test,http://b.test", ["http://a.test", "http://b.test"]),
            (" http://a.test , ,http://b.test, ", ["http://a.test", "http://b.test"]),
            (["http://a.test"], ["http://a.test"]),
        ],
    )
    def test_accepted_forms(self, raw, expected):
        assert parse_string_list(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", ",", ",,,", "[]", []])
    def test_empty_values_rejected(self, raw):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list(raw)

    def test_malformed_json_rejected(self):
        with pytest.raises(ValueError, match="Invalid JSON array"):
            parse_string_list('["http://a.test"')

    @pytest.mark.parametrize("raw", ['["http://a.test", 1]', '[{"url": "x"}]'])
    def test_non_string_items_rejected(self, raw):
        with pytest.raises(ValueError, match="array of strings"):
            parse_string_list(raw)


class _OriginSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TEST_")

    cors_origins: list[str] = ["http://default.test"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse(cls, value: str | list[str]) -> list[str]:
        return parse_string_list(value)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)


class TestStringListEnvSettingsSource:
    def test_comma_separated_env_value(self, monkeypatch):
        monkeypatch.setenv("TEST_CORS_ORIGINS", "http://a.test,http://b.test")
        assert _OriginSettings().cors_origins == ["http://a.test", "http://b.test"]

    def test_json_env_value(self, monkeypatch):
        monkeypatch.setenv("TEST_CORS_ORIGINS", '["http://a.test"]')
        assert _OriginSettings().cors_origins == ["http://a.test"]

    def test_default_without_env(self, monkeypatch):
        monkeypatch.delenv("TEST_CORS_ORIGINS", raising=False)
        assert _OriginSettings().cors_origins == ["http://default.test"]
