"""Pydantic schemas for API request/response models."""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field


def _as_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; mark them so clients get an offset."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UTCDatetime = Annotated[datetime, AfterValidator(_as_utc)]

# --- Learners ---


class LearnerCreateRequest(BaseModel):
    """Request to register a learner and enroll them in the deck."""

    username: str = Field(min_length=1, max_length=255)
    display_name: str = Field(min_length=1, max_length=255)


class LearnerResponse(BaseModel):
    id: str
    username: str
    display_name: str
    cards_enrolled: int


# --- Reviews ---


class DueCardResponse(BaseModel):
    """A card that is due for review, with its scheduling state."""

    card_state_id: str
    card_id: int
    front: str
    back: str
    next_review: UTCDatetime
    interval_days: int
    ease_factor: float
    repetitions: int


class ReviewRequest(BaseModel):
    grade: str  # again, hard, good, easy


class ReviewResponse(BaseModel):
    """Scheduling result after a graded review."""

    ok: bool = True
    next_review: UTCDatetime
    interval_days: int
    ease_factor: float
    repetitions: int


# --- Stats ---


class LearnerStatsResponse(BaseModel):
    """Overall statistics for a learner."""

    total_cards: int
    cards_due: int
    cards_learning: int  # reviewed at least once, repetitions < 2
    cards_reviewing: int  # repetitions >= 2
    total_reviews: int
    correct_reviews: int
    cards_completed: int
    accuracy: float | None
    streak_days: int
