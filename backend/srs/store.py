"""Persistence for memory states, review history and learner progress.

Every write to a card state is a compare-and-swap on its ``version`` column,
so two reviews racing on the same state cannot both land: the loser gets a
Conflict and must redo the whole read-compute-write cycle.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import MIN_EASE_FACTOR, settings, utcnow
from backend.errors import Conflict, InvalidArgument, NotFound
from backend.models.card import Card
from backend.models.card_state import CardState
from backend.models.learner import Learner, LearnerProgress
from backend.models.review_log import ReviewLog
from backend.srs.practice_sets import PracticeSet
from backend.srs.queue import SubsetFilter, check_limit, select_due
from backend.srs.sm2 import Grade, MemoryState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteCapabilities:
    """What a review commit is allowed to write besides the card state itself."""

    track_progress: bool = True
    log_history: bool = True

    @classmethod
    def from_settings(cls) -> WriteCapabilities:
        return cls(
            track_progress=settings.track_progress,
            log_history=settings.log_review_history,
        )


@dataclass(frozen=True)
class DueCard:
    """A due memory state together with the card it schedules."""

    state: MemoryState
    front: str
    back: str


def naive_utc(value: datetime | None) -> datetime | None:
    """Normalize to a naive UTC datetime for storage in SQLite."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def to_memory_state(row: CardState) -> MemoryState:
    return MemoryState(
        id=row.id,
        learner_id=row.learner_id,
        card_id=row.card_id,
        due_at=row.due_at,
        interval_days=row.interval_days,
        ease_factor=row.ease_factor,
        repetitions=row.repetitions,
        last_reviewed_at=row.last_reviewed_at,
        version=row.version,
    )


def to_card_state(state: MemoryState) -> CardState:
    """Build a new row for a state that has never been stored."""
    return CardState(
        id=state.id,
        learner_id=state.learner_id,
        card_id=state.card_id,
        due_at=naive_utc(state.due_at),
        interval_days=state.interval_days,
        ease_factor=state.ease_factor,
        repetitions=state.repetitions,
        last_reviewed_at=naive_utc(state.last_reviewed_at),
        version=state.version,
    )


class MemoryStateStore:
    """Reads and writes memory states through an async SQLAlchemy session.

    The store never commits; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, state_id: str, learner_id: str | None = None) -> MemoryState:
        """Load a state by id, optionally requiring it to belong to ``learner_id``.

        Raises:
            NotFound: If there is no such state for that learner.
        """
        stmt = (
            select(CardState)
            .where(CardState.id == state_id)
            .execution_options(populate_existing=True)
        )
        if learner_id is not None:
            stmt = stmt.where(CardState.learner_id == learner_id)
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFound(f"Card state {state_id} not found")
        return to_memory_state(row)

    async def get_for_card(self, learner_id: str, card_id: int) -> MemoryState:
        stmt = select(CardState).where(
            and_(CardState.learner_id == learner_id, CardState.card_id == card_id)
        ).execution_options(populate_existing=True)
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFound(f"Learner {learner_id} has no state for card {card_id}")
        return to_memory_state(row)

    async def write_atomic(self, state: MemoryState) -> MemoryState:
        """Store a state if nobody else has written it since it was read.

        Returns:
            The stored state with its version bumped.

        Raises:
            InvalidArgument: If the ease factor is below the floor.
            Conflict: If the stored version no longer matches ``state.version``.
            NotFound: If the state row has been deleted.
        """
        if state.ease_factor < max(MIN_EASE_FACTOR, settings.minimum_ease_factor):
            raise InvalidArgument(f"Refusing to store ease factor {state.ease_factor}")

        due_at = naive_utc(state.due_at)
        last_reviewed_at = naive_utc(state.last_reviewed_at)
        stmt = (
            update(CardState)
            .where(and_(CardState.id == state.id, CardState.version == state.version))
            .values(
                due_at=due_at,
                interval_days=state.interval_days,
                ease_factor=state.ease_factor,
                repetitions=state.repetitions,
                last_reviewed_at=last_reviewed_at,
                version=state.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            exists = await self.db.scalar(select(CardState.id).where(CardState.id == state.id))
            if exists is None:
                raise NotFound(f"Card state {state.id} not found")
            logger.warning("Lost update on card state %s at version %d", state.id, state.version)
            raise Conflict(f"Card state {state.id} was modified concurrently")

        return replace(
            state,
            due_at=due_at,
            last_reviewed_at=last_reviewed_at,
            version=state.version + 1,
        )

    async def _due_rows(self, learner_id: str, now: datetime) -> Sequence:
        stmt = (
            select(CardState, Card.front, Card.back)
            .join(Card, Card.id == CardState.card_id)
            .where(and_(CardState.learner_id == learner_id, CardState.due_at <= now))
            .order_by(CardState.due_at.asc(), CardState.card_id.asc())
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).all()

    async def list_due_cards(
        self,
        learner_id: str,
        now: datetime | None = None,
        practice_set: PracticeSet | None = None,
        limit: int | None = None,
    ) -> list[DueCard]:
        """Return due states with their card content, most overdue first."""
        check_limit(limit)
        now = naive_utc(now) or utcnow()
        rows = await self._due_rows(learner_id, now)

        by_id: dict[str, DueCard] = {}
        for row, front, back in rows:
            state = to_memory_state(row)
            by_id[state.id] = DueCard(state=state, front=front, back=back)

        subset_filter = None
        if practice_set is not None:
            subset_filter = practice_set.predicate(
                {card.state.card_id: card.front for card in by_id.values()}
            )
        selected = select_due(
            (card.state for card in by_id.values()), learner_id, now, subset_filter, limit
        )
        return [by_id[state.id] for state in selected]

    async def list_due(
        self,
        learner_id: str,
        now: datetime | None = None,
        subset_filter: SubsetFilter | None = None,
        limit: int | None = None,
    ) -> list[MemoryState]:
        """Return due states ordered exactly as ``select_due`` orders them."""
        check_limit(limit)
        now = naive_utc(now) or utcnow()
        rows = await self._due_rows(learner_id, now)
        states = [to_memory_state(row) for row, _front, _back in rows]
        return select_due(states, learner_id, now, subset_filter, limit)

    async def enroll(self, learner_id: str, now: datetime | None = None) -> int:
        """Seed a due-now state for every card the learner does not have yet.

        Returns:
            The number of states created.
        """
        now = naive_utc(now) or utcnow()
        enrolled = set(
            (await self.db.scalars(select(CardState.card_id).where(CardState.learner_id == learner_id))).all()
        )
        card_ids = (await self.db.scalars(select(Card.id).order_by(Card.id))).all()

        created = 0
        for card_id in card_ids:
            if card_id in enrolled:
                continue
            seed = MemoryState.seed(str(uuid.uuid4()), learner_id, card_id, now)
            self.db.add(to_card_state(seed))
            created += 1
        await self.db.flush()

        logger.info("Enrolled learner %s in %d new cards", learner_id, created)
        return created

    async def commit_review(
        self,
        before: MemoryState,
        after: MemoryState,
        grade: Grade,
        capabilities: WriteCapabilities,
    ) -> MemoryState:
        """Write a reviewed state plus whatever side records ``capabilities`` allow.

        Does not commit; all writes join the caller's transaction.
        """
        stored = await self.write_atomic(after)
        if capabilities.log_history:
            self.db.add(
                ReviewLog(
                    card_state_id=before.id,
                    card_id=before.card_id,
                    learner_id=before.learner_id,
                    grade=grade.value,
                    rating=grade.quality,
                    interval_before=before.interval_days,
                    interval_after=stored.interval_days,
                    ease_before=before.ease_factor,
                    ease_after=stored.ease_factor,
                    reviewed_at=stored.last_reviewed_at or utcnow(),
                )
            )
        if capabilities.track_progress:
            await self.record_progress(before.learner_id, grade)
        await self.db.flush()
        return stored

    async def record_progress(self, learner_id: str, grade: Grade) -> LearnerProgress:
        """Bump the learner's review counters, creating the row on first use."""
        progress = (
            await self.db.execute(
                select(LearnerProgress).where(LearnerProgress.learner_id == learner_id)
            )
        ).scalar_one_or_none()
        if progress is None:
            progress = LearnerProgress(
                learner_id=learner_id, total_reviews=0, correct_reviews=0, cards_completed=0
            )
            self.db.add(progress)

        progress.total_reviews += 1
        if grade.passed:
            progress.correct_reviews += 1
        progress.cards_completed = (
            await self.db.scalar(
                select(func.count(CardState.id)).where(
                    and_(
                        CardState.learner_id == learner_id,
                        CardState.last_reviewed_at.is_not(None),
                    )
                )
            )
        ) or 0
        return progress


async def create_learner(
    db: AsyncSession,
    username: str,
    display_name: str,
    now: datetime | None = None,
) -> tuple[Learner, int]:
    """Create a learner, their progress row and a state for every card.

    Returns:
        The learner and the number of cards they were enrolled in.

    Raises:
        Conflict: If the username is taken.
    """
    existing = await db.scalar(select(Learner.id).where(Learner.username == username))
    if existing is not None:
        raise Conflict(f"Username {username!r} already exists")

    learner = Learner(username=username, display_name=display_name)
    db.add(learner)
    await db.flush()
    db.add(LearnerProgress(learner_id=learner.id, total_reviews=0, correct_reviews=0, cards_completed=0))
    enrolled = await MemoryStateStore(db).enroll(learner.id, now)
    await db.commit()
    logger.info("Created learner %s (%s)", learner.id, username)
    return learner, enrolled


async def delete_learner(db: AsyncSession, learner_id: str) -> None:
    """Remove a learner and every record that belongs to them.

    Raises:
        NotFound: If the learner does not exist.
    """
    existing = await db.scalar(select(Learner.id).where(Learner.id == learner_id))
    if existing is None:
        raise NotFound(f"Learner {learner_id} not found")

    await db.execute(delete(ReviewLog).where(ReviewLog.learner_id == learner_id))
    await db.execute(delete(LearnerProgress).where(LearnerProgress.learner_id == learner_id))
    await db.execute(delete(CardState).where(CardState.learner_id == learner_id))
    await db.execute(delete(Learner).where(Learner.id == learner_id))
    await db.commit()
    logger.info("Deleted learner %s", learner_id)
