"""SM-2 spaced repetition scheduler.

A four-grade variant of SuperMemo-2 used to drill flashcards.
Reference: https://super-memory.com/english/ol/sm2.htm

Key concepts:
- Ease factor (EF): Multiplier applied to the previous interval once a card
  has graduated. Never drops below 1.3.
- Interval: Whole days until the card is due again.
- Repetitions: Consecutive passing reviews since the last failure.
- Grade: again=0, hard=1, good=2, easy=3. Anything below good is a failure.

Intervals are rounded half away from zero (19.5 -> 20).
"""

from __future__ import annotations

import functools
import logging
import math
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum

from backend.config import MIN_EASE_FACTOR, settings, utcnow
from backend.errors import InvalidArgument

logger = logging.getLogger(__name__)

# First two passing reviews use fixed intervals before EF-driven growth kicks in
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6

LEARNING = "learning"
REVIEWING = "reviewing"


@functools.total_ordering
class Grade(Enum):
    """Qualitative recall rating, ordered again < hard < good < easy."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @property
    def quality(self) -> int:
        return _QUALITY[self]

    @property
    def passed(self) -> bool:
        """True for grades that count toward the repetition streak."""
        return self.quality >= Grade.GOOD.quality

    def __lt__(self, other: Grade) -> bool:
        if not isinstance(other, Grade):
            return NotImplemented
        return self.quality < other.quality

    @classmethod
    def parse(cls, value: Grade | str) -> Grade:
        """Turn a grade token into a Grade.

        Only the exact tokens "again", "hard", "good" and "easy" are accepted.

        Raises:
            InvalidArgument: For any other value.
        """
        if isinstance(value, Grade):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidArgument(f"Invalid grade: {value!r}")


_QUALITY = {Grade.AGAIN: 0, Grade.HARD: 1, Grade.GOOD: 2, Grade.EASY: 3}


@dataclass(frozen=True)
class MemoryState:
    """The SM-2 state of one learner's progress on one card."""

    id: str
    learner_id: str
    card_id: int
    due_at: datetime  # Eligible for review once now >= due_at
    interval_days: int
    ease_factor: float
    repetitions: int  # Consecutive passing reviews since the last reset
    last_reviewed_at: datetime | None = None
    version: int = 0  # Compare-and-swap token owned by the store

    @classmethod
    def seed(
        cls,
        id: str,
        learner_id: str,
        card_id: int,
        now: datetime | None = None,
        ease_factor: float | None = None,
    ) -> MemoryState:
        """Create the enrollment state for a card: due immediately, never reviewed."""
        return cls(
            id=id,
            learner_id=learner_id,
            card_id=card_id,
            due_at=now or utcnow(),
            interval_days=0,
            ease_factor=ease_factor if ease_factor is not None else settings.initial_ease_factor,
            repetitions=0,
        )

    @property
    def regime(self) -> str:
        """Return "learning" for the first two steps, "reviewing" afterwards."""
        return LEARNING if self.repetitions < 2 else REVIEWING

    def is_due(self, now: datetime) -> bool:
        return self.due_at <= now


@dataclass(frozen=True)
class SchedulerConfig:
    """Tunable constants for the scheduler."""

    minimum_ease: float = MIN_EASE_FACTOR
    easy_bonus: float = 1.3
    first_interval: int = FIRST_INTERVAL_DAYS
    second_interval: int = SECOND_INTERVAL_DAYS

    def __post_init__(self) -> None:
        if self.minimum_ease < MIN_EASE_FACTOR:
            raise InvalidArgument(
                f"Minimum ease {self.minimum_ease} is below the SM-2 floor of {MIN_EASE_FACTOR}"
            )

    @classmethod
    def from_settings(cls) -> SchedulerConfig:
        return cls(minimum_ease=settings.minimum_ease_factor, easy_bonus=settings.easy_bonus)


def round_half_up(value: float) -> int:
    """Round a non-negative value to the nearest integer, ties away from zero."""
    return int(math.floor(value + 0.5))


def add_days(timestamp: datetime, days: int) -> datetime:
    """Advance a timestamp by whole UTC days, keeping the time of day.

    Naive timestamps are taken to already be UTC. Aware ones are converted to
    UTC first so DST transitions in the caller's zone cannot shift the result.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(UTC)
    return timestamp + timedelta(days=days)


class Scheduler:
    """Pure SM-2 state transition. Safe to share between threads and tasks."""

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        self.config = config or SchedulerConfig()

    def apply_review(
        self,
        state: MemoryState,
        grade: Grade | str,
        review_time: datetime | None = None,
    ) -> MemoryState:
        """Apply a grade to a memory state and return the next state.

        Args:
            state: Current memory state. Left untouched.
            grade: A Grade or one of "again", "hard", "good", "easy".
            review_time: When the review happened (defaults to now).

        Returns:
            A new MemoryState with updated interval, ease, repetitions and due date.

        Raises:
            InvalidArgument: If the grade is unknown or the state breaks its invariants.
        """
        grade = Grade.parse(grade)
        self._check_state(state)
        review_time = review_time or utcnow()

        repetitions, interval = self._next_interval(state, grade)
        ease = self._next_ease(state.ease_factor, grade)

        if grade is Grade.EASY:
            interval = round_half_up(interval * self.config.easy_bonus)

        new_state = replace(
            state,
            due_at=add_days(review_time, interval),
            interval_days=interval,
            ease_factor=ease,
            repetitions=repetitions,
            last_reviewed_at=review_time,
        )
        logger.debug(
            "State %s graded %s: interval %d -> %d, ease %.2f -> %.2f, reps %d -> %d",
            state.id,
            grade.value,
            state.interval_days,
            interval,
            state.ease_factor,
            ease,
            state.repetitions,
            repetitions,
        )
        return new_state

    def _check_state(self, state: MemoryState) -> None:
        if state.ease_factor < self.config.minimum_ease:
            raise InvalidArgument(
                f"State {state.id} has ease factor {state.ease_factor} "
                f"below the {self.config.minimum_ease} floor"
            )
        if state.interval_days < 0:
            raise InvalidArgument(f"State {state.id} has negative interval {state.interval_days}")
        if state.repetitions < 0:
            raise InvalidArgument(f"State {state.id} has negative repetitions {state.repetitions}")

    def _next_interval(self, state: MemoryState, grade: Grade) -> tuple[int, int]:
        """Return (repetitions, interval_days) before any easy bonus.

        Hard counts as a failure here: the streak resets just like again.
        """
        if not grade.passed:
            return 0, self.config.first_interval

        repetitions = state.repetitions + 1
        if repetitions == 1:
            interval = self.config.first_interval
        elif repetitions == 2:
            interval = self.config.second_interval
        else:
            # Growth uses the ease factor from before this review
            interval = max(1, round_half_up(state.interval_days * state.ease_factor))
        return repetitions, interval

    def _next_ease(self, ease: float, grade: Grade) -> float:
        """EF' = EF + (0.1 - (3 - q) * (0.08 + (3 - q) * 0.02)), floored."""
        miss = 3 - grade.quality
        delta = 0.1 - miss * (0.08 + miss * 0.02)
        return max(self.config.minimum_ease, ease + delta)


_default_scheduler = Scheduler()


def apply_review(
    state: MemoryState,
    grade: Grade | str,
    review_time: datetime | None = None,
) -> MemoryState:
    """Apply a review with the default scheduler configuration."""
    return _default_scheduler.apply_review(state, grade, review_time)
