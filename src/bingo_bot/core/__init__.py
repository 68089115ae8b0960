"""Core card model and win detection."""

from .card import (
    Call,
    Card,
    Cell,
    apply_called_number,
    apply_called_numbers,
    build_card,
    card_from_payload,
    card_to_payload,
    marked_count,
    parse_call,
    parse_calls,
)
from .patterns import PATTERNS, Pattern, completed_patterns, detect_win, progress

__all__ = [
    "Call",
    "Card",
    "Cell",
    "PATTERNS",
    "Pattern",
    "apply_called_number",
    "apply_called_numbers",
    "build_card",
    "card_from_payload",
    "card_to_payload",
    "completed_patterns",
    "detect_win",
    "marked_count",
    "parse_call",
    "parse_calls",
    "progress",
]
