from __future__ import annotations

import pytest

from finsync.core.config import (
    DEFAULT_DATABASE_URL,
    DEFAULT_OPENROUTER_BASE_URL,
    DEFAULT_OPENROUTER_MODEL,
    load_ai_config_from_env,
    load_sync_config_from_env,
    sanitize_env_value,
)

_ENV_VARS = (
    "FINSYNC_DATABASE_URL",
    "FINSYNC_SYNC_WINDOW_DAYS",
    "FINSYNC_HTTP_TIMEOUT_SECONDS",
    "FINSYNC_LOG_LEVEL",
    "FINSYNC_AI_TIMEOUT_SECONDS",
    "OPENROUTER_API_KEY",
    "OPENROUTER_BASE_URL",
    "OPENROUTER_MODEL",
    "OPENROUTER_DEFAULT_MODEL",
    "OPENROUTER_SITE_URL",
    "OPENROUTER_SITE_NAME",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, None),
        ("", None),
        ("  ", None),
        ('"sk-123"', "sk-123"),
        ("'sk-123'", "sk-123"),
        (" plain ", "plain"),
        ('"', '"'),
    ],
)
def test_sanitize_env_value(raw: str | None, expected: str | None) -> None:
    assert sanitize_env_value(raw) == expected


def test_sync_config_defaults() -> None:
    config = load_sync_config_from_env()

    assert config.database_url == DEFAULT_DATABASE_URL
    assert config.sync_window_days == 90
    assert config.http_timeout_seconds == 30.0
    assert config.log_level == "INFO"


def test_sync_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # setup
    monkeypatch.setenv("FINSYNC_DATABASE_URL", "'sqlite:///other.db'")
    monkeypatch.setenv("FINSYNC_SYNC_WINDOW_DAYS", "30")
    monkeypatch.setenv("FINSYNC_HTTP_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("FINSYNC_LOG_LEVEL", "debug")

    # act
    config = load_sync_config_from_env()

    # assert
    assert config.database_url == "sqlite:///other.db"
    assert config.sync_window_days == 30
    assert config.http_timeout_seconds == 2.5
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("FINSYNC_SYNC_WINDOW_DAYS", "abc"),
        ("FINSYNC_SYNC_WINDOW_DAYS", "0"),
        ("FINSYNC_SYNC_WINDOW_DAYS", "1.5"),
        ("FINSYNC_HTTP_TIMEOUT_SECONDS", "-1"),
        ("FINSYNC_LOG_LEVEL", "LOUD"),
    ],
)
def test_sync_config_rejects_bad_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        load_sync_config_from_env()


def test_ai_config_unconfigured_without_key() -> None:
    config = load_ai_config_from_env()

    assert config.configured is False
    assert config.base_url == DEFAULT_OPENROUTER_BASE_URL
    assert config.default_model == DEFAULT_OPENROUTER_MODEL
    assert config.model is None


def test_ai_config_strips_quotes(monkeypatch: pytest.MonkeyPatch) -> None:
    # setup
    monkeypatch.setenv("OPENROUTER_API_KEY", '"sk-or-123"')
    monkeypatch.setenv("OPENROUTER_MODEL", "'meta/llama-3'")
    monkeypatch.setenv("OPENROUTER_SITE_URL", "https://finsync.local")
    monkeypatch.setenv("OPENROUTER_SITE_NAME", "finsync")
    monkeypatch.setenv("FINSYNC_AI_TIMEOUT_SECONDS", "5")

    # act
    config = load_ai_config_from_env()

    # assert
    assert config.configured is True
    assert config.api_key == "sk-or-123"
    assert config.model == "meta/llama-3"
    assert config.site_url == "https://finsync.local"
    assert config.site_name == "finsync"
    assert config.timeout_seconds == 5.0
