"""Flashcard content shared by every learner."""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Card(Base, TimestampMixin):
    """A front/back flashcard. Scheduling state lives on CardState."""

    __tablename__ = "cards"
    __table_args__ = (UniqueConstraint("front", "back", name="uq_cards_front_back"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    front: Mapped[str] = mapped_column(String(500), nullable=False)
    back: Mapped[str] = mapped_column(String(500), nullable=False)

    states: Mapped[list["CardState"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="card", cascade="all, delete-orphan"
    )
