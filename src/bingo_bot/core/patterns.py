"""Win detection over a marked card."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..layout import COLUMN_LETTERS, GRID_SIZE
from .card import Card

ROW = "row"
COLUMN = "column"
DIAGONAL = "diagonal"


@dataclass(frozen=True)
class Pattern:
    kind: str
    index: int

    @property
    def label(self) -> str:
        if self.kind == ROW:
            return f"row {self.index + 1}"
        if self.kind == COLUMN:
            return f"column {COLUMN_LETTERS[self.index]}"
        return "diagonal ↘" if self.index == 0 else "diagonal ↙"


# Reporting order: rows top to bottom, columns left to right, then the diagonals.
PATTERNS: Tuple[Pattern, ...] = (
    tuple(Pattern(ROW, i) for i in range(GRID_SIZE))
    + tuple(Pattern(COLUMN, j) for j in range(GRID_SIZE))
    + (Pattern(DIAGONAL, 0), Pattern(DIAGONAL, 1))
)


def pattern_cells(pattern: Pattern) -> Tuple[Tuple[int, int], ...]:
    if pattern.kind == ROW:
        return tuple((pattern.index, j) for j in range(GRID_SIZE))
    if pattern.kind == COLUMN:
        return tuple((i, pattern.index) for i in range(GRID_SIZE))
    if pattern.index == 0:
        return tuple((i, i) for i in range(GRID_SIZE))
    return tuple((i, GRID_SIZE - 1 - i) for i in range(GRID_SIZE))


def is_complete(card: Card, pattern: Pattern) -> bool:
    return all(card.cell(i, j).called for i, j in pattern_cells(pattern))


def detect_win(card: Card) -> Optional[Pattern]:
    """Return the first complete pattern in reporting order, or None.

    This is a hint for offering a claim; the backend verifies every claim.
    """
    for pattern in PATTERNS:
        if is_complete(card, pattern):
            return pattern
    return None


def completed_patterns(card: Card) -> List[Pattern]:
    return [p for p in PATTERNS if is_complete(card, p)]


def progress(card: Card) -> float:
    """Best fraction of any single pattern already marked."""
    best = 0
    for pattern in PATTERNS:
        marked = sum(1 for i, j in pattern_cells(pattern) if card.cell(i, j).called)
        best = max(best, marked)
    return best / GRID_SIZE
