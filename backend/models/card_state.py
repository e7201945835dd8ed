"""Per-(learner, card) SM-2 memory state."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import settings, utcnow
from backend.models.base import Base, TimestampMixin


class CardState(Base, TimestampMixin):
    """Scheduling parameters for one learner's progress on one card."""

    __tablename__ = "card_states"
    __table_args__ = (
        UniqueConstraint("learner_id", "card_id", name="uq_card_states_learner_card"),
        Index("ix_card_states_learner_due", "learner_id", "due_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    learner_id: Mapped[str] = mapped_column(
        ForeignKey("learners.id", ondelete="CASCADE"), nullable=False
    )
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id", ondelete="CASCADE"), nullable=False)
    due_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ease_factor: Mapped[float] = mapped_column(
        Float, nullable=False, default=settings.initial_ease_factor
    )
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    learner: Mapped["Learner"] = relationship(back_populates="card_states")  # type: ignore[name-defined] # noqa: F821
    card: Mapped["Card"] = relationship(back_populates="states")  # type: ignore[name-defined] # noqa: F821
