"""Named subsets of the deck a learner can drill on their own.

The multiplication deck has fronts like "7 × 8". The ``9x9`` set keeps only
cards whose two factors are both at most 9; ``full`` keeps everything.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from backend.errors import InvalidArgument
from backend.srs.sm2 import MemoryState

_FACTORS_RE = re.compile(r"(\d+)\D+(\d+)")

# Fronts that don't parse get this factor so they fall outside any bounded set
UNPARSEABLE_FACTOR = 100


def parse_factors(front: str) -> tuple[int, int]:
    """Extract the two factors from a card front such as "7 × 8"."""
    match = _FACTORS_RE.search(front.lower())
    if match is None:
        return UNPARSEABLE_FACTOR, UNPARSEABLE_FACTOR
    return int(match.group(1)), int(match.group(2))


@dataclass(frozen=True)
class PracticeSet:
    """A named predicate over card content."""

    name: str
    max_factor: int | None = None  # None means no bound

    def matches(self, front: str) -> bool:
        if self.max_factor is None:
            return True
        a, b = parse_factors(front)
        return a <= self.max_factor and b <= self.max_factor

    def predicate(self, fronts: Mapping[int, str]) -> Callable[[MemoryState], bool]:
        """Build a due-set filter that looks up each state's card front in ``fronts``."""

        def _matches(state: MemoryState) -> bool:
            return self.matches(fronts.get(state.card_id, ""))

        return _matches


FULL = PracticeSet("full")
NINE_BY_NINE = PracticeSet("9x9", max_factor=9)

PRACTICE_SETS: dict[str, PracticeSet] = {s.name: s for s in (FULL, NINE_BY_NINE)}


def parse_practice_set(name: str | None) -> PracticeSet:
    """Look up a practice set by name (case-insensitive). Empty means ``full``.

    Raises:
        InvalidArgument: If the name is not a known practice set.
    """
    if name is None:
        return FULL
    key = name.strip().lower()
    if not key:
        return FULL
    try:
        return PRACTICE_SETS[key]
    except KeyError:
        raise InvalidArgument(f"Invalid set: {name!r}") from None
