from __future__ import annotations

from typing import Dict, List, Tuple

GRID_SIZE = 5
CARD_POOL_SIZE = 400
COLUMN_LETTERS: Tuple[str, ...] = ("B", "I", "N", "G", "O")
CENTER: Tuple[int, int] = (2, 2)
NUMBERS_PER_COLUMN = 15


def letter_for_column(col: int) -> str | None:
    if 0 <= col < GRID_SIZE:
        return COLUMN_LETTERS[col]
    return None


def column_for_letter(letter: str) -> int | None:
    try:
        return COLUMN_LETTERS.index(letter.strip().upper())
    except ValueError:
        return None


def standard_column_ranges() -> Dict[int, List[int]]:
    """Conventional 75-ball ranges: B 1-15, I 16-30, N 31-45, G 46-60, O 61-75.

    Only used for local previews and simulation; real cards arrive from the
    backend already filled.
    """
    ranges: Dict[int, List[int]] = {}
    for col in range(GRID_SIZE):
        start = col * NUMBERS_PER_COLUMN + 1
        ranges[col] = list(range(start, start + NUMBERS_PER_COLUMN))
    return ranges


def letter_for_number(number: int) -> str | None:
    """Infer the column letter of a bare number under the standard ranges."""
    if number < 1 or number > GRID_SIZE * NUMBERS_PER_COLUMN:
        return None
    return COLUMN_LETTERS[(number - 1) // NUMBERS_PER_COLUMN]
