"""Review orchestrator.

Runs one read-compute-write cycle: load the memory state, grade it with the
scheduler, and commit the new state together with its history and progress
records in a single transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from backend.config import settings, utcnow
from backend.errors import Conflict, InvalidArgument
from backend.srs.sm2 import Grade, MemoryState, Scheduler, SchedulerConfig
from backend.srs.store import MemoryStateStore, WriteCapabilities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewOutcome:
    """A committed review: the state before and after grading."""

    grade: Grade
    before: MemoryState
    after: MemoryState


def default_scheduler() -> Scheduler:
    return Scheduler(SchedulerConfig.from_settings())


async def submit_review(
    db: AsyncSession,
    learner_id: str,
    state_id: str,
    grade: Grade | str,
    now: datetime | None = None,
    scheduler: Scheduler | None = None,
    capabilities: WriteCapabilities | None = None,
) -> ReviewOutcome:
    """Grade one card state and commit the result.

    Args:
        db: Database session. Committed on success, rolled back on failure.
        learner_id: The learner doing the review; must own the state.
        state_id: The card state being reviewed.
        grade: A Grade or one of "again", "hard", "good", "easy".
        now: Review timestamp (defaults to utcnow).
        scheduler: Scheduler to use (defaults to one built from settings).
        capabilities: Which side records to write (defaults from settings).

    Returns:
        The committed ReviewOutcome.

    Raises:
        InvalidArgument: For an unknown grade, before anything is read.
        NotFound: If the learner has no such state.
        Conflict: If another review committed first.
    """
    grade = Grade.parse(grade)
    scheduler = scheduler or default_scheduler()
    capabilities = capabilities or WriteCapabilities.from_settings()
    store = MemoryStateStore(db)

    try:
        before = await store.get(state_id, learner_id=learner_id)
        after = scheduler.apply_review(before, grade, now or utcnow())
        after = await store.commit_review(before, after, grade, capabilities)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Learner %s graded state %s %s: next due %s (%d days)",
        learner_id,
        state_id,
        grade.value,
        after.due_at.isoformat(),
        after.interval_days,
    )
    return ReviewOutcome(grade=grade, before=before, after=after)


async def review_with_retry(
    db: AsyncSession,
    learner_id: str,
    state_id: str,
    grade: Grade | str,
    now: datetime | None = None,
    scheduler: Scheduler | None = None,
    capabilities: WriteCapabilities | None = None,
    max_attempts: int | None = None,
) -> ReviewOutcome:
    """Like submit_review, but re-reads and retries when another write wins.

    Raises:
        Conflict: If every attempt lost the race.
    """
    if max_attempts is None:
        max_attempts = settings.review_max_attempts
    if max_attempts < 1:
        raise InvalidArgument(f"max_attempts must be positive, got {max_attempts}")

    retrying = AsyncRetrying(
        retry=retry_if_exception_type(Conflict),
        stop=stop_after_attempt(max_attempts),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    # Each attempt starts from a rolled-back session and re-reads the state
    async for attempt in retrying:
        with attempt:
            outcome = await submit_review(
                db, learner_id, state_id, grade, now, scheduler, capabilities
            )
    return outcome
