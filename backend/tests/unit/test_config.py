"""Unit tests for environment-driven settings."""

import pytest

from prayer_companion.config import DEFAULT_CORS_ORIGINS, Settings

ENV_VARS = (
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GROQ_API_KEY",
    "GROQ_MODEL",
    "GENERATION_TIMEOUT_SECONDS",
    "PRAYER_CACHE_BACKEND",
    "PRAYER_CACHE_PATH",
    "REDIS_URL",
    "PRAYER_CACHE_MAX_ENTRIES",
    "PRAYER_CACHE_TTL_SECONDS",
    "FETCH_MAX_ATTEMPTS",
    "FETCH_BASE_DELAY",
    "FETCH_MAX_DELAY",
    "COMMUNITY_DATA_DIR",
    "CORS_ALLOW_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettingsFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self) -> None:
        settings = Settings.from_env()

        assert settings.gemini_api_key is None
        assert settings.cache_backend == "file"
        assert settings.cache_max_entries == 50
        assert settings.cache_ttl_seconds == 86400
        assert settings.fetch_max_attempts == 3
        assert settings.fetch_base_delay == 1.0
        assert settings.cors_allow_origins == DEFAULT_CORS_ORIGINS

    def test_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        monkeypatch.setenv("PRAYER_CACHE_BACKEND", "Redis")
        monkeypatch.setenv("PRAYER_CACHE_MAX_ENTRIES", "10")
        monkeypatch.setenv("FETCH_BASE_DELAY", "0.25")
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example,")

        settings = Settings.from_env()

        assert settings.gemini_api_key == "secret"
        assert settings.cache_backend == "redis"
        assert settings.cache_max_entries == 10
        assert settings.fetch_base_delay == 0.25
        assert settings.cors_allow_origins == ("https://a.example", "https://b.example")

    def test_blank_api_key_is_none(self, monkeypatch) -> None:
        monkeypatch.setenv("GROQ_API_KEY", "")
        assert Settings.from_env().groq_api_key is None

    def test_bad_numbers_fall_back_to_defaults(self, monkeypatch) -> None:
        monkeypatch.setenv("FETCH_MAX_ATTEMPTS", "three")
        monkeypatch.setenv("FETCH_BASE_DELAY", "soon")

        settings = Settings.from_env()

        assert settings.fetch_max_attempts == 3
        assert settings.fetch_base_delay == 1.0

    @pytest.mark.parametrize(
        "name, value",
        [
            ("PRAYER_CACHE_MAX_ENTRIES", "0"),
            ("PRAYER_CACHE_MAX_ENTRIES", "-5"),
            ("PRAYER_CACHE_TTL_SECONDS", "0"),
            ("FETCH_MAX_ATTEMPTS", "0"),
            ("FETCH_BASE_DELAY", "-1"),
        ],
    )
    def test_out_of_range_numbers_fall_back_to_defaults(self, monkeypatch, name, value) -> None:
        monkeypatch.setenv(name, value)

        settings = Settings.from_env()

        assert settings == Settings()
