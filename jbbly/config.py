"""Configuration settings for the jbbly service."""

import os
from typing import Optional


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    """Application configuration with type hints."""

    # Storage
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./jbbly.db")

    # Phrase pool (JSON array of {gibberish, answer, hint?}); built-in pool when unset
    PHRASE_POOL_PATH: Optional[str] = os.getenv("PHRASE_POOL_PATH") or None

    # Game rules
    DAILY_PHRASE_COUNT: int = _int_env("DAILY_PHRASE_COUNT", 5)
    SKIP_PENALTY_MS: int = _int_env("SKIP_PENALTY_MS", 10000)
    HINT_PENALTY_MS: int = _int_env("HINT_PENALTY_MS", 5000)
    SKIP_REVEAL_MS: int = _int_env("SKIP_REVEAL_MS", 2000)
    WRONG_GUESS_MS: int = _int_env("WRONG_GUESS_MS", 500)
    TICK_INTERVAL_MS: int = _int_env("TICK_INTERVAL_MS", 50)
    MAX_NAME_LENGTH: int = _int_env("MAX_NAME_LENGTH", 24)

    # In-memory sessions are dropped after this long
    SESSION_TTL_MINUTES: int = _int_env("SESSION_TTL_MINUTES", 180)

    # Leaderboard
    LEADERBOARD_LIMIT: int = _int_env("LEADERBOARD_LIMIT", 10)

    # Realtime fan-out (optional)
    NATS_URL: Optional[str] = os.getenv("NATS_URL") or None

    # Logging
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "").lower()
    LOG_COLOR: str = os.getenv("LOG_COLOR", "1").lower()


config = Config()
