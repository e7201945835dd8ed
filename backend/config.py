from datetime import UTC, datetime
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

# SM-2 never lets the ease factor fall below this, whatever the configuration
MIN_EASE_FACTOR = 1.3


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Flashdrill"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'flashdrill.db'}"
    initial_ease_factor: float = Field(default=2.5, ge=MIN_EASE_FACTOR)
    minimum_ease_factor: float = Field(default=MIN_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    easy_bonus: float = 1.3
    default_due_limit: int = 20
    review_max_attempts: int = 3
    track_progress: bool = True
    log_review_history: bool = True
    default_learner: str = "student"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    debug: bool = False

    model_config = {"env_prefix": "FLASHDRILL_", "env_file": ".env"}


settings = Settings()
