"""API routes for learner statistics and dashboard data."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import current_learner_id
from backend.api.schemas import LearnerStatsResponse
from backend.database import get_session
from backend.srs.stats import learner_stats

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=LearnerStatsResponse)
async def get_learner_stats(
    learner_id: str = Depends(current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> LearnerStatsResponse:
    """Get overall statistics for the current learner."""
    stats = await learner_stats(db, learner_id)
    return LearnerStatsResponse(
        total_cards=stats.total_cards,
        cards_due=stats.cards_due,
        cards_learning=stats.cards_learning,
        cards_reviewing=stats.cards_reviewing,
        total_reviews=stats.total_reviews,
        correct_reviews=stats.correct_reviews,
        cards_completed=stats.cards_completed,
        accuracy=stats.accuracy,
        streak_days=stats.streak_days,
    )
