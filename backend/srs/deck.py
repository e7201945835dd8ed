"""The multiplication-table deck every learner drills."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.card import Card

logger = logging.getLogger(__name__)

TABLE_SIZE = 12


def multiplication_cards(size: int = TABLE_SIZE) -> list[tuple[str, str]]:
    """Return (front, back) pairs for the size x size table, row by row."""
    return [
        (f"{a} × {b}", str(a * b))
        for a in range(1, size + 1)
        for b in range(1, size + 1)
    ]


async def seed_deck(db: AsyncSession, size: int = TABLE_SIZE) -> int:
    """Insert any missing multiplication cards. Safe to run repeatedly.

    Returns:
        The number of cards added.
    """
    result = await db.execute(select(Card.front, Card.back))
    existing = {(front, back) for front, back in result.all()}

    added = 0
    for front, back in multiplication_cards(size):
        if (front, back) in existing:
            continue
        db.add(Card(front=front, back=back))
        added += 1

    await db.commit()
    logger.info("Seeded deck: %d cards added, %d already present", added, len(existing))
    return added
