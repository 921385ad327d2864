from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_DATABASE_URL = "sqlite:///finsync.db"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "openrouter/auto"


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Pipeline configuration loaded at process startup."""

    database_url: str = DEFAULT_DATABASE_URL
    sync_window_days: int = 90
    http_timeout_seconds: float = 30.0
    log_level: str = "INFO"


@dataclass(frozen=True, slots=True)
class AIConfig:
    """OpenAI-compatible chat backend settings (OpenRouter by default)."""

    api_key: str | None = None
    base_url: str = DEFAULT_OPENROUTER_BASE_URL
    model: str | None = None
    default_model: str = DEFAULT_OPENROUTER_MODEL
    site_url: str | None = None
    site_name: str | None = None
    timeout_seconds: float = 15.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


def sanitize_env_value(value: str | None) -> str | None:
    """Strip whitespace and one layer of surrounding quotes; empty means unset."""
    if value is None:
        return None
    cleaned = value.strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'":
        cleaned = cleaned[1:-1].strip()
    return cleaned or None


def _getenv(name: str) -> str | None:
    return sanitize_env_value(os.environ.get(name))


def _positive_number(name: str, default: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_sync_config_from_env() -> SyncConfig:
    """Load pipeline config from env."""
    window = _positive_number("FINSYNC_SYNC_WINDOW_DAYS", 90)
    if window != int(window):
        raise ValueError("FINSYNC_SYNC_WINDOW_DAYS must be a whole number of days")

    log_level = (_getenv("FINSYNC_LOG_LEVEL") or "INFO").upper()
    if log_level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"}:
        raise ValueError(f"FINSYNC_LOG_LEVEL has unsupported value: {log_level}")

    return SyncConfig(
        database_url=_getenv("FINSYNC_DATABASE_URL") or DEFAULT_DATABASE_URL,
        sync_window_days=int(window),
        http_timeout_seconds=_positive_number("FINSYNC_HTTP_TIMEOUT_SECONDS", 30.0),
        log_level=log_level,
    )


def load_ai_config_from_env() -> AIConfig:
    """Load AI backend config from env.

    A missing API key is not an error: categorization falls back to the
    keyword heuristic.
    """
    return AIConfig(
        api_key=_getenv("OPENROUTER_API_KEY"),
        base_url=_getenv("OPENROUTER_BASE_URL") or DEFAULT_OPENROUTER_BASE_URL,
        model=_getenv("OPENROUTER_MODEL"),
        default_model=_getenv("OPENROUTER_DEFAULT_MODEL") or DEFAULT_OPENROUTER_MODEL,
        site_url=_getenv("OPENROUTER_SITE_URL"),
        site_name=_getenv("OPENROUTER_SITE_NAME"),
        timeout_seconds=_positive_number("FINSYNC_AI_TIMEOUT_SECONDS", 15.0),
    )
