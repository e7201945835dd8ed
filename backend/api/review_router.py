"""API routes for due cards and grading reviews."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import current_learner_id
from backend.api.schemas import DueCardResponse, ReviewRequest, ReviewResponse
from backend.database import get_session
from backend.srs.practice_sets import parse_practice_set
from backend.srs.queue import parse_limit
from backend.srs.review import review_with_retry
from backend.srs.sm2 import Grade
from backend.srs.store import MemoryStateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["review"])


@router.get("/cards", response_model=list[DueCardResponse])
async def due_cards(
    limit: str | None = Query(default=None),
    practice_set: str | None = Query(default=None, alias="set"),
    learner_id: str = Depends(current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> list[DueCardResponse]:
    """List the learner's due cards, most overdue first."""
    selected = parse_practice_set(practice_set)
    count = parse_limit(limit)
    cards = await MemoryStateStore(db).list_due_cards(
        learner_id, practice_set=selected, limit=count
    )
    return [
        DueCardResponse(
            card_state_id=card.state.id,
            card_id=card.state.card_id,
            front=card.front,
            back=card.back,
            next_review=card.state.due_at,
            interval_days=card.state.interval_days,
            ease_factor=card.state.ease_factor,
            repetitions=card.state.repetitions,
        )
        for card in cards
    ]


@router.post("/review/{card_state_id}", response_model=ReviewResponse)
async def review_card(
    card_state_id: str,
    request: ReviewRequest,
    learner_id: str = Depends(current_learner_id),
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Grade a card and return its new schedule."""
    grade = Grade.parse(request.grade)
    outcome = await review_with_retry(db, learner_id, card_state_id, grade)
    return ReviewResponse(
        next_review=outcome.after.due_at,
        interval_days=outcome.after.interval_days,
        ease_factor=outcome.after.ease_factor,
        repetitions=outcome.after.repetitions,
    )
