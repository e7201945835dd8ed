"""Learner statistics for the dashboard and the CLI."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import utcnow
from backend.models.card_state import CardState
from backend.models.learner import LearnerProgress
from backend.models.review_log import ReviewLog

logger = logging.getLogger(__name__)


@dataclass
class LearnerStats:
    total_cards: int = 0
    cards_due: int = 0
    cards_learning: int = 0
    cards_reviewing: int = 0
    total_reviews: int = 0
    correct_reviews: int = 0
    cards_completed: int = 0
    streak_days: int = 0

    @property
    def accuracy(self) -> float | None:
        if not self.total_reviews:
            return None
        return round(self.correct_reviews / self.total_reviews, 3)


async def _count(db: AsyncSession, *conditions) -> int:
    stmt = select(func.count(CardState.id)).where(and_(*conditions))
    return (await db.execute(stmt)).scalar() or 0


async def learner_stats(
    db: AsyncSession,
    learner_id: str,
    now: datetime | None = None,
) -> LearnerStats:
    """Collect card counts, review counters and the current streak."""
    now = now or utcnow()
    mine = CardState.learner_id == learner_id

    stats = LearnerStats(
        total_cards=await _count(db, mine),
        cards_due=await _count(db, mine, CardState.due_at <= now),
        cards_learning=await _count(
            db, mine, CardState.last_reviewed_at.is_not(None), CardState.repetitions < 2
        ),
        cards_reviewing=await _count(db, mine, CardState.repetitions >= 2),
    )

    progress = (
        await db.execute(select(LearnerProgress).where(LearnerProgress.learner_id == learner_id))
    ).scalar_one_or_none()
    if progress is not None:
        stats.total_reviews = progress.total_reviews
        stats.correct_reviews = progress.correct_reviews
        stats.cards_completed = progress.cards_completed

    stats.streak_days = await _calculate_streak(db, learner_id, now)
    return stats


async def _calculate_streak(
    db: AsyncSession,
    learner_id: str,
    now: datetime,
) -> int:
    """Calculate the number of consecutive days the learner has reviewed."""
    stmt = (
        select(distinct(func.date(ReviewLog.reviewed_at)))
        .where(ReviewLog.learner_id == learner_id)
        .order_by(func.date(ReviewLog.reviewed_at).desc())
    )
    result = await db.execute(stmt)
    dates = [row[0] for row in result.all()]

    if not dates:
        return 0

    today = now.date()
    streak = 0

    for i, review_date in enumerate(dates):
        expected = today - timedelta(days=i)
        if str(review_date) == str(expected):
            streak += 1
        else:
            break

    return streak
