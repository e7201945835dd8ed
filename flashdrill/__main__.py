"""CLI interface for flashdrill.

Usage:
    python -m flashdrill review             Start a review session
    python -m flashdrill due                List the cards due now
    python -m flashdrill stats              Show your statistics
    python -m flashdrill seed               Add the multiplication deck
"""

import argparse
import asyncio
import logging

from sqlalchemy import select

from backend.config import settings, utcnow
from backend.database import async_session, engine
from backend.errors import InvalidArgument
from backend.models import Base
from backend.models.learner import Learner
from backend.srs.deck import seed_deck
from backend.srs.practice_sets import parse_practice_set
from backend.srs.review import submit_review
from backend.srs.sm2 import Grade
from backend.srs.stats import learner_stats
from backend.srs.store import MemoryStateStore, create_learner

# Numeric shortcuts typed at the rating prompt
RATING_KEYS = {"1": Grade.AGAIN, "2": Grade.HARD, "3": Grade.GOOD, "4": Grade.EASY}


def parse_rating(text: str, suggested: Grade) -> Grade:
    """Read a rating typed at the prompt: blank keeps the suggestion.

    Raises:
        InvalidArgument: If the text is neither a grade token nor 1-4.
    """
    text = text.strip().lower()
    if not text:
        return suggested
    if text in RATING_KEYS:
        return RATING_KEYS[text]
    return Grade.parse(text)


def suggest_grade(answer: str, expected: str) -> Grade:
    """Good for a right answer, again for anything else."""
    return Grade.GOOD if answer.strip() == expected.strip() else Grade.AGAIN


async def ensure_db() -> None:
    """Create tables and the deck if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as db:
        await seed_deck(db)


async def ensure_learner() -> str:
    """Ensure the default learner exists and is enrolled; return the ID."""
    async with async_session() as db:
        stmt = select(Learner).where(Learner.username == settings.default_learner)
        learner = (await db.execute(stmt)).scalar_one_or_none()
        if learner is None:
            learner, _ = await create_learner(
                db, settings.default_learner, settings.default_learner.title()
            )
            return learner.id

        # Pick up any cards added since the learner was created
        await MemoryStateStore(db).enroll(learner.id)
        await db.commit()
        return learner.id


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive review session."""
    await ensure_db()
    learner_id = await ensure_learner()
    practice_set = parse_practice_set(args.set)

    async with async_session() as db:
        cards = await MemoryStateStore(db).list_due_cards(
            learner_id, practice_set=practice_set, limit=args.max_cards
        )

        if not cards:
            print("\nNo cards due for review. You're all caught up!")
            return

        print("\n  Review Session")
        print(f"  {len(cards)} cards due ({practice_set.name})\n")
        print("  Ratings: 1=Again  2=Hard  3=Good  4=Easy")
        print("  Type 'q' to quit\n")

        correct = 0
        reviewed = 0

        for i, card in enumerate(cards, 1):
            card_label = f"  [{i}/{len(cards)}]"
            if card.state.last_reviewed_at is None:
                card_label += " (NEW)"
            print(card_label)
            print(f"  {card.front} = ?")

            response = input("\n  Your answer: ").strip()
            if response.lower() == "q":
                print("\n  Session ended early.")
                break

            suggested = suggest_grade(response, card.back)
            if suggested.passed:
                print("  Correct!")
                correct += 1
            else:
                print(f"  Expected: {card.back}")

            while True:
                rate_input = input(f"  Rate [1-4, enter={suggested.value}]: ")
                try:
                    grade = parse_rating(rate_input, suggested)
                    break
                except InvalidArgument:
                    print("  Please enter 1-4 or again/hard/good/easy.")

            outcome = await submit_review(db, learner_id, card.state.id, grade, utcnow())
            reviewed += 1
            print(f"  Next review in {outcome.after.interval_days} days\n")

    accuracy = correct / reviewed * 100 if reviewed else 0
    print("\n  Session Complete!")
    print(f"  Reviewed: {reviewed}  Correct: {correct}  Accuracy: {accuracy:.0f}%\n")


async def cmd_due(args: argparse.Namespace) -> None:
    """List the cards due now."""
    await ensure_db()
    learner_id = await ensure_learner()
    practice_set = parse_practice_set(args.set)

    async with async_session() as db:
        cards = await MemoryStateStore(db).list_due_cards(
            learner_id, practice_set=practice_set, limit=args.limit
        )

    print(f"  {len(cards)} cards due ({practice_set.name})")
    for card in cards:
        print(
            f"  {card.front:<10} due {card.state.due_at:%Y-%m-%d %H:%M}"
            f"  interval={card.state.interval_days}d ease={card.state.ease_factor:.2f}"
        )


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show learner statistics."""
    await ensure_db()
    learner_id = await ensure_learner()

    async with async_session() as db:
        stats = await learner_stats(db, learner_id)

    accuracy = f"{stats.accuracy * 100:.0f}%" if stats.accuracy is not None else "-"
    print(f"\n  {settings.app_name} Statistics")
    print(f"  {'Total cards:':<20} {stats.total_cards}")
    print(f"  {'Due now:':<20} {stats.cards_due}")
    print(f"  {'Learning:':<20} {stats.cards_learning}")
    print(f"  {'Reviewing:':<20} {stats.cards_reviewing}")
    print(f"  {'Total reviews:':<20} {stats.total_reviews}")
    print(f"  {'Accuracy:':<20} {accuracy}")
    print(f"  {'Streak (days):':<20} {stats.streak_days}")
    print()


async def cmd_seed(args: argparse.Namespace) -> None:
    """Add the multiplication deck and enroll the default learner."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as db:
        added = await seed_deck(db, size=args.size)
    await ensure_learner()
    print(f"  Added {added} cards.")


def main() -> None:
    """Entry point for the flashdrill CLI application."""
    parser = argparse.ArgumentParser(
        prog="flashdrill",
        description="Multiplication flashcards scheduled with SM-2",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # review
    review_parser = subparsers.add_parser("review", help="Start a review session")
    review_parser.add_argument(
        "--max-cards", type=int, default=settings.default_due_limit, help="Max cards per session"
    )
    review_parser.add_argument("--set", default="full", help="Practice set: full or 9x9")

    # due
    due_parser = subparsers.add_parser("due", help="List cards due for review")
    due_parser.add_argument("--limit", type=int, default=None, help="Show at most this many")
    due_parser.add_argument("--set", default="full", help="Practice set: full or 9x9")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # seed
    seed_parser = subparsers.add_parser("seed", help="Add the multiplication deck")
    seed_parser.add_argument("--size", type=int, default=12, help="Table size (default: 12)")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "review": cmd_review,
        "due": cmd_due,
        "stats": cmd_stats,
        "seed": cmd_seed,
    }

    try:
        asyncio.run(cmd_map[args.command](args))
    except InvalidArgument as exc:
        parser.error(str(exc))


if __name__ == "__main__":
    main()
