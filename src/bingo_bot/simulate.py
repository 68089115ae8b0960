"""Offline preview: deal a card locally and play a seeded call sequence against it.

Real cards and calls always come from the backend; this exists for demos and
for exercising the card model end to end without network access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .core import Call, Card, Pattern, apply_called_number, build_card, detect_win, marked_count
from .layout import CARD_POOL_SIZE, GRID_SIZE, letter_for_number, standard_column_ranges
from .rng import BallSource, ball_source, stream_seed


@dataclass
class SimulationResult:
    card: Card
    calls: List[Call] = field(default_factory=list)
    pattern: Optional[Pattern] = None

    @property
    def calls_to_win(self) -> Optional[int]:
        return len(self.calls) if self.pattern else None


def deal_card(card_number: int, source: BallSource, *, game_id: Optional[str] = None) -> Card:
    if not 1 <= card_number <= CARD_POOL_SIZE:
        raise ValueError(f"card number must be within 1..{CARD_POOL_SIZE}")
    columns: Dict[int, List[int]] = {}
    for col, numbers in standard_column_ranges().items():
        columns[col] = source.deal(numbers, GRID_SIZE)
    return build_card(card_number, columns, game_id=game_id)


def draw_sequence(source: BallSource) -> List[Call]:
    numbers = source.draw_order([n for col in standard_column_ranges().values() for n in col])
    return [Call(letter=letter_for_number(n) or "", number=n) for n in numbers]


def simulate(*, seed: int, engine: str = "py_random", card_number: int = 1) -> SimulationResult:
    """Call numbers until the card completes a pattern (always happens within 75 calls)."""
    card = deal_card(card_number, ball_source(engine, stream_seed(seed, card_number, "card")))
    calls = draw_sequence(ball_source(engine, stream_seed(seed, 0, "calls")))
    result = SimulationResult(card=card)
    for call in calls:
        card = apply_called_number(card, call.letter, call.number)
        result.calls.append(call)
        pattern = detect_win(card)
        if pattern is not None:
            result.pattern = pattern
            break
    result.card = card
    return result


def summarize(result: SimulationResult) -> Dict[str, object]:
    return {
        "card_number": result.card.number,
        "calls": [str(c) for c in result.calls],
        "marked": marked_count(result.card),
        "pattern": result.pattern.label if result.pattern else None,
    }
