"""API routes for registering and removing learners."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import LearnerCreateRequest, LearnerResponse
from backend.database import get_session
from backend.srs.store import create_learner, delete_learner

router = APIRouter(prefix="/api/learners", tags=["learners"])


@router.post("", response_model=LearnerResponse, status_code=201)
async def learner_create(
    request: LearnerCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> LearnerResponse:
    """Register a learner and enroll them in every card."""
    learner, enrolled = await create_learner(db, request.username, request.display_name)
    return LearnerResponse(
        id=learner.id,
        username=learner.username,
        display_name=learner.display_name,
        cards_enrolled=enrolled,
    )


@router.delete("/{learner_id}", status_code=204)
async def learner_delete(
    learner_id: str,
    db: AsyncSession = Depends(get_session),
) -> Response:
    """Remove a learner with all of their states, reviews and progress."""
    await delete_learner(db, learner_id)
    return Response(status_code=204)
