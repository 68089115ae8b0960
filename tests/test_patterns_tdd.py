from __future__ import annotations

from hypothesis import given, strategies as st

from bingo_bot.core import (
    PATTERNS,
    Pattern,
    apply_called_number,
    apply_called_numbers,
    build_card,
    completed_patterns,
    detect_win,
    parse_call,
    progress,
)
from bingo_bot.core.patterns import pattern_cells
from bingo_bot.layout import standard_column_ranges


def _card():
    return build_card(
        7,
        {
            "B": [1, 2, 7, 4, 5],
            "I": [16, 17, 19, 20, 21],
            "N": [31, 32, 34, 35],
            "G": [46, 47, 50, 51, 52],
            "O": [61, 62, 71, 64, 65],
        },
    )


def _call_all(card, calls):
    for call in calls:
        parsed = parse_call(call)
        card = apply_called_number(card, parsed.letter, parsed.number)
    return card


column_draws = st.fixed_dictionaries(
    {
        col: st.lists(st.sampled_from(numbers), min_size=5, max_size=5, unique=True)
        for col, numbers in standard_column_ranges().items()
    }
)


def test_pattern_order_and_labels():
    assert len(PATTERNS) == 12
    assert PATTERNS[0] == Pattern("row", 0)
    assert PATTERNS[5] == Pattern("column", 0)
    assert [p.label for p in PATTERNS[-2:]] == ["diagonal ↘", "diagonal ↙"]
    assert Pattern("row", 2).label == "row 3"
    assert Pattern("column", 4).label == "column O"
    assert pattern_cells(Pattern("diagonal", 1))[0] == (0, 4)


@given(columns=column_draws)
def test_fresh_card_never_wins(columns):
    card = build_card(1, columns)
    assert detect_win(card) is None
    assert completed_patterns(card) == []


def test_third_row_wins_through_free_center():
    card = _call_all(_card(), ["B7", "I19", "N33", "G50"])
    assert detect_win(card) is None
    card = _call_all(card, ["O71"])
    assert detect_win(card) == Pattern("row", 2)
    assert detect_win(card).label == "row 3"


def test_center_column_needs_four_calls():
    card = _call_all(_card(), ["N31", "N32", "N34"])
    assert detect_win(card) is None
    card = _call_all(card, ["N35"])
    assert detect_win(card) == Pattern("column", 2)


def test_diagonal_win():
    card = _call_all(_card(), ["B1", "I17", "G51", "O65"])
    assert detect_win(card) == Pattern("diagonal", 0)


def test_first_pattern_in_order_is_reported():
    card = _call_all(_card(), ["B1", "I17", "G51", "O65", "B7", "I19", "G50", "O71"])
    assert completed_patterns(card) == [Pattern("row", 2), Pattern("diagonal", 0)]
    assert detect_win(card) == Pattern("row", 2)


def test_progress_tracks_best_pattern():
    card = _card()
    assert progress(card) == 0.2
    card = _call_all(card, ["B7", "I19"])
    assert progress(card) == 0.6
    assert progress(apply_called_numbers(card, [])) == 0.2
