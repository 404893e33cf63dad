"""
Tests for environment-driven settings.
"""

from support_bot.config import DEFAULT_DATABASE_URL, load_settings


def test_defaults(monkeypatch):
    for name in (
        "MAX_MINUTE_REQUESTS", "MAX_HOURLY_REQUESTS", "CONTEXT_HISTORY_LENGTH",
        "DATABASE_URL", "ADMIN_IDS", "OPENAI_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.short_window_limit == 5
    assert settings.long_window_limit == 20
    assert settings.context_history_length == 5
    assert settings.short_window_seconds == 60
    assert settings.long_window_seconds == 3600
    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.admin_ids == []


def test_overrides(monkeypatch):
    monkeypatch.setenv("MAX_MINUTE_REQUESTS", "3")
    monkeypatch.setenv("MAX_HOURLY_REQUESTS", "50")
    monkeypatch.setenv("CONTEXT_HISTORY_LENGTH", "10")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.short_window_limit == 3
    assert settings.long_window_limit == 50
    assert settings.context_history_length == 10
    assert settings.log_level == "DEBUG"


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("MAX_MINUTE_REQUESTS", "many")
    monkeypatch.setenv("MAX_HOURLY_REQUESTS", "0")
    monkeypatch.setenv("CONTEXT_HISTORY_LENGTH", "-2")

    settings = load_settings()

    assert settings.short_window_limit == 5
    assert settings.long_window_limit == 20
    assert settings.context_history_length == 5


def test_admin_ids(monkeypatch):
    monkeypatch.setenv("ADMIN_IDS", "101, 202,,oops, 303")

    assert load_settings().admin_ids == [101, 202, 303]
