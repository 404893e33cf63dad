"""
Environment-driven settings for the support bot.
"""

import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()  # Load .env file

logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./db/support_bot.db"


class Settings(BaseModel):
    """Runtime configuration for the bots, the pipeline and the HTTP surface."""
    telegram_token: Optional[str] = Field(default=None, description="End-user bot token")
    admin_bot_token: Optional[str] = Field(default=None, description="Admin bot token")
    admin_ids: list[int] = Field(default_factory=list, description="Telegram ids allowed to administer")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key; mock mode when absent")
    openai_base_url: Optional[str] = Field(default=None, description="OpenAI-compatible endpoint")
    openai_model: str = Field(default="gpt-4o-mini", description="Chat-completion model")
    transcription_model: str = Field(default="whisper-1", description="Speech-to-text model")

    database_url: str = Field(default=DEFAULT_DATABASE_URL, description="SQLAlchemy async URL")

    short_window_limit: int = Field(default=5, gt=0, description="Requests allowed per short window")
    long_window_limit: int = Field(default=20, gt=0, description="Requests allowed per long window")
    short_window_seconds: int = Field(default=60, gt=0, description="Short window length")
    long_window_seconds: int = Field(default=3600, gt=0, description="Long window length")
    context_history_length: int = Field(default=5, gt=0, description="Context turns sent to the model")

    log_level: str = Field(default="INFO", description="Logging level name")


def _env_int(name: str, default: int) -> int:
    """Read a positive integer from the environment, falling back to the default."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %d", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%d, using %d", name, value, default)
        return default
    return value


def _env_ids(name: str) -> list[int]:
    """Parse a comma-separated list of integer ids."""
    ids = []
    for part in (os.getenv(name) or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning("Ignoring invalid id %r in %s", part, name)
    return ids


def load_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        telegram_token=os.getenv("TELEGRAM_TOKEN") or None,
        admin_bot_token=os.getenv("ADMIN_BOT_TOKEN") or None,
        admin_ids=_env_ids("ADMIN_IDS"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
        transcription_model=os.getenv("OPENAI_TRANSCRIPTION_MODEL") or "whisper-1",
        database_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
        short_window_limit=_env_int("MAX_MINUTE_REQUESTS", 5),
        long_window_limit=_env_int("MAX_HOURLY_REQUESTS", 20),
        short_window_seconds=_env_int("SHORT_WINDOW_SECONDS", 60),
        long_window_seconds=_env_int("LONG_WINDOW_SECONDS", 3600),
        context_history_length=_env_int("CONTEXT_HISTORY_LENGTH", 5),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return load_settings()
