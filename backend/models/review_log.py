from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base


class ReviewLog(Base):
    __tablename__ = "review_logs"
    __table_args__ = (
        CheckConstraint("rating BETWEEN 0 AND 3", name="ck_review_logs_rating"),
        CheckConstraint(
            "grade IN ('again', 'hard', 'good', 'easy')", name="ck_review_logs_grade"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    card_state_id: Mapped[str] = mapped_column(
        ForeignKey("card_states.id", ondelete="CASCADE"), nullable=False
    )
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id", ondelete="CASCADE"), nullable=False)
    learner_id: Mapped[str] = mapped_column(
        ForeignKey("learners.id", ondelete="CASCADE"), nullable=False
    )
    grade: Mapped[str] = mapped_column(String(20), nullable=False)  # again, hard, good, easy
    rating: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=again .. 3=easy
    interval_before: Mapped[int] = mapped_column(Integer, nullable=False)
    interval_after: Mapped[int] = mapped_column(Integer, nullable=False)
    ease_before: Mapped[float] = mapped_column(Float, nullable=False)
    ease_after: Mapped[float] = mapped_column(Float, nullable=False)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    learner: Mapped["Learner"] = relationship(back_populates="review_logs")  # type: ignore[name-defined] # noqa: F821
