"""Card model: the 5x5 grid, the FREE center cell and call marking."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..layout import CENTER, COLUMN_LETTERS, GRID_SIZE, column_for_letter, letter_for_number

_CALL_RE = re.compile(r"^\s*([BINGObingo])?\s*-?\s*(\d{1,3})\s*$")


@dataclass(frozen=True)
class Call:
    """A backend-announced (letter, number) pair."""

    letter: str
    number: int

    def __str__(self) -> str:
        return f"{self.letter}{self.number}"


@dataclass(frozen=True)
class Cell:
    letter: str
    number: Optional[int]
    free: bool = False
    called: bool = False

    def matches(self, letter: str, number: int) -> bool:
        return not self.free and self.number is not None and self.letter == letter and self.number == number


Grid = Tuple[Tuple[Cell, ...], ...]


@dataclass(frozen=True)
class Card:
    """Immutable snapshot of a purchased card.

    ``called`` flags are a local projection of the game's called numbers and
    are recomputed whenever that sequence grows.
    """

    number: int
    grid: Grid
    game_id: Optional[str] = None
    value: Optional[float] = None

    def cell(self, row: int, col: int) -> Cell:
        return self.grid[row][col]

    def cells(self) -> Iterator[Cell]:
        for row in self.grid:
            yield from row

    def numbers(self) -> List[int]:
        return [c.number for c in self.cells() if c.number is not None]


def _column_values(column_ranges: Mapping[Any, Sequence[Optional[int]]], col: int) -> List[Optional[int]]:
    values = column_ranges.get(col)
    if values is None:
        values = column_ranges.get(COLUMN_LETTERS[col])
    return [int(v) if v is not None else None for v in (values or ())]


def build_card(
    number: int,
    column_ranges: Mapping[Any, Sequence[Optional[int]]],
    *,
    game_id: Optional[str] = None,
    value: Optional[float] = None,
) -> Card:
    """Lay out five columns of five cells, top to bottom.

    ``column_ranges`` maps a column (index or letter) to the numbers the
    backend assigned to it. The center column may list 4 numbers or 5; with 5
    the middle one gives way to FREE. Keys outside the grid are ignored.

    Raises ValueError when a column is short or has a blank entry: every
    non-free cell carries a number.
    """
    columns: List[List[Cell]] = []
    for col, letter in enumerate(COLUMN_LETTERS):
        values = _column_values(column_ranges, col)
        needed = GRID_SIZE
        if col == CENTER[1]:
            needed -= 1
            if len(values) >= GRID_SIZE:
                values = values[: CENTER[0]] + values[CENTER[0] + 1 : GRID_SIZE]
        values = values[:needed]
        if len(values) < needed or any(v is None for v in values):
            raise ValueError(f"Column {letter} of card {number} needs {needed} numbers, got {values}")
        pool = iter(values)
        cells: List[Cell] = []
        for row in range(GRID_SIZE):
            if (row, col) == CENTER:
                cells.append(Cell(letter=letter, number=None, free=True, called=True))
                continue
            cells.append(Cell(letter=letter, number=next(pool)))
        columns.append(cells)
    grid = tuple(tuple(columns[col][row] for col in range(GRID_SIZE)) for row in range(GRID_SIZE))
    return Card(number=int(number), grid=grid, game_id=game_id, value=value)


def apply_called_number(card: Card, letter: str, number: int) -> Card:
    """Mark every non-free cell matching the call.

    Unknown calls return ``card`` unchanged; so does a repeated call.
    """
    letter = letter.strip().upper()
    changed = False
    rows: List[Tuple[Cell, ...]] = []
    for row in card.grid:
        new_row = []
        for cell in row:
            if not cell.called and cell.matches(letter, number):
                cell = replace(cell, called=True)
                changed = True
            new_row.append(cell)
        rows.append(tuple(new_row))
    if not changed:
        return card
    return replace(card, grid=tuple(rows))


def clear_marks(card: Card) -> Card:
    grid = tuple(
        tuple(cell if cell.free or not cell.called else replace(cell, called=False) for cell in row)
        for row in card.grid
    )
    return replace(card, grid=grid)


def apply_called_numbers(card: Card, calls: Iterable[Call]) -> Card:
    """Recompute markings from the full called sequence."""
    card = clear_marks(card)
    for call in calls:
        card = apply_called_number(card, call.letter, call.number)
    return card


def marked_count(card: Card) -> int:
    return sum(1 for cell in card.cells() if cell.called)


def parse_call(value: Any) -> Optional[Call]:
    """Accept ``{"letter": "B", "number": 7}``, ``"B7"``, ``"B-7"`` or ``7``."""
    if isinstance(value, Call):
        return value
    if isinstance(value, Mapping):
        raw_number = value.get("number")
        raw_letter = value.get("letter")
        try:
            number = int(raw_number)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        letter = str(raw_letter).strip().upper() if raw_letter else letter_for_number(number)
        if letter is None or column_for_letter(letter) is None:
            return None
        return Call(letter=letter, number=number)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        letter = letter_for_number(value)
        return Call(letter=letter, number=value) if letter else None
    if isinstance(value, str):
        match = _CALL_RE.match(value)
        if not match:
            return None
        number = int(match.group(2))
        letter = match.group(1).upper() if match.group(1) else letter_for_number(number)
        return Call(letter=letter, number=number) if letter else None
    return None


def parse_calls(values: Iterable[Any]) -> List[Call]:
    calls: List[Call] = []
    for value in values or ():
        call = parse_call(value)
        if call is not None:
            calls.append(call)
    return calls


def card_from_payload(payload: Mapping[str, Any]) -> Card:
    """Build a card from the backend wire format.

    Incoming ``called`` flags are dropped; callers re-apply the game's called
    numbers. A grid with a missing or non-numeric cell raises ValueError.
    """
    rows = payload.get("numbers") or payload.get("grid") or []
    if not isinstance(rows, (list, tuple)) or not all(isinstance(row, (list, tuple)) for row in rows):
        raise ValueError("Card grid must be a list of rows")
    columns: Dict[int, List[Optional[int]]] = {col: [None] * GRID_SIZE for col in range(GRID_SIZE)}
    for r, row in enumerate(list(rows)[:GRID_SIZE]):
        for col, raw in enumerate(list(row)[:GRID_SIZE]):
            if isinstance(raw, Mapping):
                raw = None if raw.get("free") else raw.get("number")
            if raw is None or raw == "FREE":
                continue
            try:
                columns[col][r] = int(raw)
            except (TypeError, ValueError):
                continue
    value = payload.get("value")
    game_id = payload.get("gameId", payload.get("game_id"))
    return build_card(
        int(payload.get("number", 0)),
        columns,
        game_id=str(game_id) if game_id is not None else None,
        value=float(value) if value is not None else None,
    )


def card_to_payload(card: Card) -> Dict[str, Any]:
    return {
        "number": card.number,
        "gameId": card.game_id,
        "value": card.value,
        "numbers": [
            [
                {"letter": cell.letter, "number": cell.number, "free": cell.free, "called": cell.called}
                for cell in row
            ]
            for row in card.grid
        ],
    }
