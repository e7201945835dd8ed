"""SQLAlchemy ORM models for the flashdrill database."""

from backend.models.base import Base
from backend.models.card import Card
from backend.models.card_state import CardState
from backend.models.learner import Learner, LearnerProgress
from backend.models.review_log import ReviewLog

__all__ = ["Base", "Card", "CardState", "Learner", "LearnerProgress", "ReviewLog"]
