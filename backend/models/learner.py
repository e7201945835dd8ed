import uuid

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Learner(Base, TimestampMixin):
    __tablename__ = "learners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    card_states: Mapped[list["CardState"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="learner", cascade="all, delete-orphan"
    )
    review_logs: Mapped[list["ReviewLog"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="learner", cascade="all, delete-orphan"
    )
    progress: Mapped["LearnerProgress"] = relationship(
        back_populates="learner", cascade="all, delete-orphan", uselist=False
    )


class LearnerProgress(Base, TimestampMixin):
    """Running review counters for the dashboard."""

    __tablename__ = "learner_progress"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(
        ForeignKey("learners.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cards_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    learner: Mapped["Learner"] = relationship(back_populates="progress")
