"""Due-set selection for review sessions.

Picks the memory states a learner should review now: everything past its
due date, most overdue first, optionally narrowed by a practice set and
capped at a count.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from backend.errors import InvalidArgument
from backend.srs.sm2 import MemoryState

logger = logging.getLogger(__name__)

SubsetFilter = Callable[[MemoryState], bool]


def due_order(state: MemoryState) -> tuple[datetime, int, str]:
    """Sort key: most overdue first, then card id, then state id."""
    return state.due_at, state.card_id, state.id


def check_limit(limit: int | None) -> None:
    """Reject anything but a positive integer (or None for no cap)."""
    if limit is None:
        return
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidArgument(f"Invalid limit: {limit!r}")


def parse_limit(raw: str | None) -> int | None:
    """Parse a limit taken from a query string, keeping the same rules as check_limit."""
    if raw is None:
        return None
    try:
        limit = int(raw)
    except ValueError:
        raise InvalidArgument(f"Invalid limit: {raw!r}") from None
    check_limit(limit)
    return limit


def select_due(
    states: Iterable[MemoryState],
    learner_id: str,
    now: datetime,
    subset_filter: SubsetFilter | None = None,
    limit: int | None = None,
) -> list[MemoryState]:
    """Return the learner's due states in review order.

    Args:
        states: Candidate states. May include other learners' states.
        learner_id: Whose states to select.
        now: States with ``due_at <= now`` are due.
        subset_filter: Optional predicate; only states it accepts are kept.
        limit: Optional positive cap on the number of states returned.

    Returns:
        A new list sorted by due date ascending, ties broken by card id.

    Raises:
        InvalidArgument: If ``limit`` is not a positive integer or
            ``subset_filter`` is not callable.
    """
    check_limit(limit)
    if subset_filter is not None and not callable(subset_filter):
        raise InvalidArgument(f"Invalid subset filter: {subset_filter!r}")

    due = [
        state
        for state in states
        if state.learner_id == learner_id
        and state.due_at <= now
        and (subset_filter is None or subset_filter(state))
    ]
    due.sort(key=due_order)
    if limit is not None:
        due = due[:limit]

    logger.debug("Selected %d due states for learner %s", len(due), learner_id)
    return due
