"""Tests for persistence and the review cycle against an in-memory database."""

import logging
from dataclasses import replace
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings
from backend.errors import Conflict, InvalidArgument, NotFound
from backend.models.card import Card
from backend.models.card_state import CardState
from backend.models.learner import LearnerProgress
from backend.models.review_log import ReviewLog
from backend.srs.deck import seed_deck
from backend.srs.practice_sets import NINE_BY_NINE
from backend.srs.review import review_with_retry, submit_review
from backend.srs.sm2 import MemoryState, Scheduler
from backend.srs.stats import learner_stats
from backend.srs.store import (
    MemoryStateStore,
    WriteCapabilities,
    create_learner,
    delete_learner,
)

T0 = datetime(2024, 1, 1, 10, 0)


async def _learner(db: AsyncSession, username: str = "ada") -> str:
    learner, _ = await create_learner(db, username, username.title(), now=T0)
    return learner.id


async def _count(db: AsyncSession, model, **filters) -> int:
    conditions = [getattr(model, name) == value for name, value in filters.items()]
    stmt = select(func.count()).select_from(model).where(*conditions)
    return (await db.execute(stmt)).scalar() or 0


class TestDeckSeeding:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, db: AsyncSession) -> None:
        assert await _count(db, Card) == 144
        assert await seed_deck(db) == 0
        assert await _count(db, Card) == 144


class TestEnrollment:
    @pytest.mark.asyncio
    async def test_create_learner_enrolls_every_card(self, db: AsyncSession) -> None:
        learner, enrolled = await create_learner(db, "ada", "Ada", now=T0)
        assert enrolled == 144
        assert await _count(db, CardState, learner_id=learner.id) == 144

        state = await MemoryStateStore(db).get_for_card(learner.id, 1)
        assert state.interval_days == 0
        assert state.ease_factor == 2.5
        assert state.repetitions == 0
        assert state.due_at == T0
        assert state.last_reviewed_at is None
        assert state.version == 0

    @pytest.mark.asyncio
    async def test_enrolled_rows_match_seeded_state(self, db: AsyncSession) -> None:
        learner, _ = await create_learner(db, "ada", "Ada", now=T0)
        stored = await MemoryStateStore(db).get_for_card(learner.id, 7)
        assert stored == MemoryState.seed(stored.id, learner.id, 7, now=T0)
        ids = (await db.scalars(select(CardState.id).where(CardState.learner_id == learner.id))).all()
        assert len(set(ids)) == 144

    @pytest.mark.asyncio
    async def test_enroll_only_adds_missing_cards(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        db.add(Card(front="13 × 1", back="13"))
        await db.flush()
        assert await MemoryStateStore(db).enroll(learner_id, T0) == 1
        assert await MemoryStateStore(db).enroll(learner_id, T0) == 0

    @pytest.mark.asyncio
    async def test_duplicate_username_conflicts(self, db: AsyncSession) -> None:
        await _learner(db, "ada")
        with pytest.raises(Conflict):
            await create_learner(db, "ada", "Other Ada")

    @pytest.mark.asyncio
    async def test_delete_learner_removes_everything(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)
        await submit_review(db, learner_id, state.id, "good", T0)

        await delete_learner(db, learner_id)
        assert await _count(db, CardState, learner_id=learner_id) == 0
        assert await _count(db, ReviewLog, learner_id=learner_id) == 0
        assert await _count(db, LearnerProgress, learner_id=learner_id) == 0
        # Cards are shared and stay
        assert await _count(db, Card) == 144

    @pytest.mark.asyncio
    async def test_delete_unknown_learner(self, db: AsyncSession) -> None:
        with pytest.raises(NotFound):
            await delete_learner(db, "missing")


class TestMemoryStateStore:
    @pytest.mark.asyncio
    async def test_get_enforces_owner(self, db: AsyncSession) -> None:
        ada = await _learner(db, "ada")
        bob = await _learner(db, "bob")
        store = MemoryStateStore(db)
        state = await store.get_for_card(ada, 5)

        assert (await store.get(state.id)).card_id == 5
        assert (await store.get(state.id, learner_id=ada)).card_id == 5
        with pytest.raises(NotFound):
            await store.get(state.id, learner_id=bob)
        with pytest.raises(NotFound):
            await store.get("no-such-state")

    @pytest.mark.asyncio
    async def test_write_atomic_bumps_version(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        store = MemoryStateStore(db)
        state = await store.get_for_card(learner_id, 1)

        stored = await store.write_atomic(Scheduler().apply_review(state, "good", T0))
        assert stored.version == state.version + 1
        reloaded = await store.get(state.id)
        assert reloaded.version == stored.version
        assert reloaded.interval_days == 1
        assert reloaded.due_at == T0 + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_stale_write_conflicts(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        store = MemoryStateStore(db)
        stale = await store.get_for_card(learner_id, 1)

        await store.write_atomic(Scheduler().apply_review(stale, "good", T0))
        with pytest.raises(Conflict):
            await store.write_atomic(Scheduler().apply_review(stale, "again", T0))
        # The first write survived
        assert (await store.get(stale.id)).repetitions == 1

    @pytest.mark.asyncio
    async def test_write_missing_state(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)
        with pytest.raises(NotFound):
            await MemoryStateStore(db).write_atomic(replace(state, id="gone"))

    @pytest.mark.asyncio
    async def test_write_refuses_low_ease(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)
        with pytest.raises(InvalidArgument):
            await MemoryStateStore(db).write_atomic(replace(state, ease_factor=1.1))

    @pytest.mark.asyncio
    async def test_write_floor_ignores_lowered_setting(
        self, db: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "minimum_ease_factor", 1.0)
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)
        with pytest.raises(InvalidArgument):
            await MemoryStateStore(db).write_atomic(replace(state, ease_factor=1.2))

    @pytest.mark.asyncio
    async def test_list_due_orders_by_due_then_card(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        store = MemoryStateStore(db)
        # Push card 2 into the future and make card 10 the most overdue
        for card_id, due_at in [(2, T0 + timedelta(days=3)), (10, T0 - timedelta(days=1))]:
            state = await store.get_for_card(learner_id, card_id)
            await store.write_atomic(replace(state, due_at=due_at))
        await db.commit()

        due = await store.list_due(learner_id, T0, limit=4)
        assert [s.card_id for s in due] == [10, 1, 3, 4]

        everything = await store.list_due(learner_id, T0)
        assert len(everything) == 143
        assert 2 not in {s.card_id for s in everything}

    @pytest.mark.asyncio
    async def test_list_due_cards_with_practice_set(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        cards = await MemoryStateStore(db).list_due_cards(learner_id, T0, NINE_BY_NINE)
        assert len(cards) == 81
        assert all(NINE_BY_NINE.matches(card.front) for card in cards)
        assert cards[0].front == "1 × 1"
        assert cards[0].back == "1"

    @pytest.mark.asyncio
    async def test_list_due_rejects_bad_limit(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        with pytest.raises(InvalidArgument):
            await MemoryStateStore(db).list_due_cards(learner_id, T0, limit=0)

    @pytest.mark.asyncio
    async def test_list_due_unknown_learner(self, db: AsyncSession) -> None:
        assert await MemoryStateStore(db).list_due("nobody", T0) == []


class TestReviewCycle:
    @pytest.mark.asyncio
    async def test_submit_review_commits_state_history_and_progress(
        self, db: AsyncSession
    ) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)

        outcome = await submit_review(db, learner_id, state.id, "good", T0)
        assert outcome.before == state
        assert outcome.after.repetitions == 1
        assert outcome.after.due_at == datetime(2024, 1, 2, 10, 0)

        log = (await db.execute(select(ReviewLog))).scalar_one()
        assert (log.grade, log.rating) == ("good", 2)
        assert (log.interval_before, log.interval_after) == (0, 1)

        progress = (await db.execute(select(LearnerProgress))).scalar_one()
        assert progress.total_reviews == 1
        assert progress.correct_reviews == 1
        assert progress.cards_completed == 1

    @pytest.mark.asyncio
    async def test_failed_review_counts_but_not_correct(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        store = MemoryStateStore(db)
        first = await store.get_for_card(learner_id, 1)
        second = await store.get_for_card(learner_id, 2)
        await submit_review(db, learner_id, first.id, "again", T0)
        await submit_review(db, learner_id, second.id, "hard", T0)

        stats = await learner_stats(db, learner_id, T0)
        assert stats.total_reviews == 2
        assert stats.correct_reviews == 0
        assert stats.cards_completed == 2
        assert stats.accuracy == 0.0
        assert stats.cards_learning == 2

    @pytest.mark.asyncio
    async def test_capabilities_skip_side_records(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)
        capabilities = WriteCapabilities(track_progress=False, log_history=False)

        await submit_review(db, learner_id, state.id, "easy", T0, capabilities=capabilities)
        assert await _count(db, ReviewLog) == 0
        progress = (await db.execute(select(LearnerProgress))).scalar_one()
        assert progress.total_reviews == 0
        assert (await MemoryStateStore(db).get(state.id)).repetitions == 1

    @pytest.mark.asyncio
    async def test_invalid_grade_writes_nothing(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)
        with pytest.raises(InvalidArgument):
            await submit_review(db, learner_id, state.id, "meh", T0)
        assert await _count(db, ReviewLog) == 0
        assert (await MemoryStateStore(db).get(state.id)).version == state.version

    @pytest.mark.asyncio
    async def test_review_of_someone_elses_state(self, db: AsyncSession) -> None:
        ada = await _learner(db, "ada")
        bob = await _learner(db, "bob")
        state = await MemoryStateStore(db).get_for_card(ada, 1)
        with pytest.raises(NotFound):
            await submit_review(db, bob, state.id, "good", T0)

    @pytest.mark.asyncio
    async def test_reviewed_card_leaves_due_set(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        store = MemoryStateStore(db)
        head = (await store.list_due(learner_id, T0, limit=1))[0]
        await submit_review(db, learner_id, head.id, "good", T0)

        next_head = (await store.list_due(learner_id, T0, limit=1))[0]
        assert next_head.card_id != head.card_id
        tomorrow = await store.list_due(learner_id, T0 + timedelta(days=1))
        assert tomorrow[-1].card_id == head.card_id

    @pytest.mark.asyncio
    async def test_retry_reruns_cycle_after_conflict(
        self, db: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)

        original = MemoryStateStore.write_atomic
        calls = {"n": 0}

        async def flaky_write(self, new_state):
            calls["n"] += 1
            if calls["n"] == 1:
                raise Conflict("simulated race")
            return await original(self, new_state)

        monkeypatch.setattr(MemoryStateStore, "write_atomic", flaky_write)
        outcome = await review_with_retry(db, learner_id, state.id, "good", T0, max_attempts=2)
        assert calls["n"] == 2
        assert outcome.after.version == state.version + 1

    @pytest.mark.asyncio
    async def test_retry_gives_up(self, db: AsyncSession, monkeypatch: pytest.MonkeyPatch) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)

        async def always_conflict(self, new_state):
            raise Conflict("simulated race")

        monkeypatch.setattr(MemoryStateStore, "write_atomic", always_conflict)
        with pytest.raises(Conflict):
            await review_with_retry(db, learner_id, state.id, "good", T0, max_attempts=3)

    @pytest.mark.asyncio
    async def test_retry_stops_after_max_attempts_and_logs(
        self, db: AsyncSession, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        learner_id = await _learner(db)
        state = await MemoryStateStore(db).get_for_card(learner_id, 1)
        calls = {"n": 0}

        async def always_conflict(self, new_state):
            calls["n"] += 1
            raise Conflict("simulated race")

        monkeypatch.setattr(MemoryStateStore, "write_atomic", always_conflict)
        with caplog.at_level(logging.WARNING, logger="backend.srs.review"):
            with pytest.raises(Conflict):
                await review_with_retry(db, learner_id, state.id, "good", T0, max_attempts=3)
        assert calls["n"] == 3
        # One warning before each of the two retries
        warnings = [r for r in caplog.records if r.name == "backend.srs.review"]
        assert len(warnings) == 2
        assert all(r.levelno == logging.WARNING for r in warnings)
        # Nothing was written
        assert (await MemoryStateStore(db).get(state.id)).version == state.version

    @pytest.mark.asyncio
    async def test_retry_does_not_retry_other_errors(self, db: AsyncSession) -> None:
        learner_id = await _learner(db)
        with pytest.raises(NotFound):
            await review_with_retry(db, learner_id, "no-such-state", "good", T0, max_attempts=3)
        with pytest.raises(InvalidArgument):
            await review_with_retry(db, learner_id, "no-such-state", "good", T0, max_attempts=0)
