from __future__ import annotations

import pytest

from bingo_bot.core import Call, Pattern, build_card
from bingo_bot.errors import ProtocolError
from bingo_bot.events import (
    CardSold,
    ClaimAvailable,
    EventType,
    Game,
    GameEnded,
    GameEnding,
    GameStarting,
    GameStateSnapshot,
    GameStatus,
    GameView,
    GameWon,
    NumberCalled,
    Notify,
    PlayerJoined,
    Winner,
    game_from_payload,
    parse_event,
)


def _card(game_id="g1"):
    return build_card(
        5,
        {
            "B": [1, 2, 7, 4, 5],
            "I": [16, 17, 19, 20, 21],
            "N": [31, 32, 34, 35],
            "G": [46, 47, 50, 51, 52],
            "O": [61, 62, 71, 64, 65],
        },
        game_id=game_id,
    )


def _view():
    view = GameView(user_id="u1")
    assert view.apply(GameStarting("g1")) == [Notify(GameStarting("g1"))]
    view.add_card(_card())
    return view


def test_status_transitions():
    assert GameStatus.WAITING.can_transition(GameStatus.ACTIVE)
    assert GameStatus.ACTIVE.can_transition(GameStatus.COMPLETED)
    assert not GameStatus.COMPLETED.can_transition(GameStatus.ACTIVE)
    assert not GameStatus.WAITING.can_transition(GameStatus.COMPLETED)


def test_parse_event_variants():
    event = parse_event({"type": "number_called", "gameId": "g1", "data": {"letter": "B", "number": 7, "currentCalls": 3}})
    assert event == NumberCalled("g1", "B", 7, current_calls=3)
    assert event.type is EventType.NUMBER_CALLED

    event = parse_event({"event": "numberCalled", "gameId": "g1", "number": 19, "calledNumbers": []})
    assert event.call == Call("I", 19)

    event = parse_event({"type": "winnerDeclared", "gameId": "g1", "winner": {"id": "u2", "username": "abebe"}, "amount": 90})
    assert event == Winner("g1", "u2", "abebe", 90.0)

    event = parse_event({"type": "cardPurchased", "gameId": "g1", "cardNumber": 12, "pot": 40})
    assert event == CardSold("g1", 12, 40.0)

    snapshot = parse_event({"type": "gameState", "data": {"id": "g1", "status": "active", "calledNumbers": ["B7"]}})
    assert isinstance(snapshot, GameStateSnapshot)
    assert snapshot.game_id == "g1"
    assert snapshot.game.called_numbers == [Call("B", 7)]


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "mystery", "gameId": "g1"},
        {"type": "number_called", "gameId": "g1", "number": 99},
        {"type": "player_joined", "gameId": "g1", "username": "x"},
        {"type": "card_sold", "gameId": "g1", "cardNumber": "twelve", "pot": 1},
        {"type": "game_starting"},
        {"type": "gameState", "data": {"id": "g1", "status": "paused"}},
        {"type": "game_state", "data": {"id": "g1", "calledNumbers": 5}},
        {"type": "game_state", "data": {"id": "g1", "calledNumbers": {"B": 7}}},
        {"type": "game_state", "data": {"id": "g1", "settings": "x"}},
        {"type": "game_state", "game": "g1"},
        {"type": "game_state", "data": {"id": ["g1"]}},
        {"type": ["number_called"], "gameId": "g1"},
        {"type": 7, "gameId": "g1"},
        {"type": "game_starting", "gameId": {"id": "g1"}},
    ],
)
def test_parse_event_rejects_malformed_frames(raw):
    with pytest.raises(ProtocolError):
        parse_event(raw)


def test_game_from_payload_defaults():
    game = game_from_payload({"id": "abcdef123456", "status": "waiting", "cards_sold": 10, "settings": {"bet_amount": 10}})
    assert game.short_id == "abcdef12"
    assert game.available_cards == 390
    assert game.bet_amount == 10.0
    assert game.called_numbers == []


def test_number_called_activates_game_and_marks_cards():
    view = _view()
    outcomes = view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    assert outcomes == [Notify(NumberCalled("g1", "B", 7, current_calls=1))]
    assert view.status is GameStatus.ACTIVE
    assert view.cards[5].cell(2, 0).called


def test_duplicate_call_is_discarded():
    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    assert view.apply(NumberCalled("g1", "B", 7, current_calls=1)) == []
    assert view.apply(NumberCalled("g1", "B", 7)) == []
    assert view.called == [Call("B", 7)]


def test_out_of_order_calls_are_held_until_the_gap_fills():
    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    assert view.apply(NumberCalled("g1", "G", 50, current_calls=3)) == []
    assert view.called == [Call("B", 7)]
    outcomes = view.apply(NumberCalled("g1", "I", 19, current_calls=2))
    assert outcomes == [
        Notify(NumberCalled("g1", "I", 19, current_calls=2)),
        Notify(NumberCalled("g1", "G", 50, current_calls=3)),
    ]
    assert view.called == [Call("B", 7), Call("I", 19), Call("G", 50)]
    assert view.pending == {}


def test_claim_is_offered_once_when_a_card_wins():
    view = _view()
    for seq, (letter, number) in enumerate([("B", 7), ("I", 19), ("G", 50)], start=1):
        view.apply(NumberCalled("g1", letter, number, current_calls=seq))
    outcomes = view.apply(NumberCalled("g1", "O", 71, current_calls=4))
    assert outcomes[-1] == ClaimAvailable(game_id="g1", card_number=5, pattern=Pattern("row", 2))
    outcomes = view.apply(NumberCalled("g1", "B", 1, current_calls=5))
    assert not any(isinstance(o, ClaimAvailable) for o in outcomes)


def test_winner_closes_claims_and_names_the_local_player():
    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    outcomes = view.apply(Winner("g1", "u1", "me", 120.0))
    assert outcomes == [GameWon(event=Winner("g1", "u1", "me", 120.0), is_local_winner=True)]
    assert view.status is GameStatus.COMPLETED
    assert view.claims_open is False
    assert view.apply(Winner("g1", "u1", "me", 120.0)) == []


def test_winner_for_another_user():
    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    (outcome,) = view.apply(Winner("g1", "u2", "abebe", 80.0))
    assert outcome.is_local_winner is False


def test_invalid_transitions_are_ignored():
    view = _view()
    assert view.apply(Winner("g1", "u2", "abebe", 80.0)) == []
    assert view.status is GameStatus.WAITING
    assert view.apply(GameEnding("g1")) == []

    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    view.apply(Winner("g1", "u2", "abebe", 80.0))
    assert view.apply(NumberCalled("g1", "I", 19, current_calls=2)) == []
    assert view.apply(GameStarting("g1")) == []
    assert view.apply(PlayerJoined("g1", "late", 9)) == []
    assert view.called == [Call("B", 7)]


def test_game_ending_only_while_claims_open():
    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    assert view.apply(GameEnding("g1")) == [Notify(GameEnding("g1"))]


def test_events_for_other_games_are_ignored():
    view = _view()
    assert view.apply(NumberCalled("g2", "B", 7, current_calls=1)) == []
    assert view.apply(CardSold("g2", 3, 10.0)) == []
    assert view.called == []


def test_counters_follow_player_and_card_events():
    view = _view()
    view.apply(PlayerJoined("g1", "abebe", 4))
    view.apply(CardSold("g1", 12, 40.0))
    assert view.players == 4
    assert view.pot == 40.0


def test_new_game_resets_a_finished_view():
    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    view.apply(Winner("g1", "u2", "abebe", 80.0))
    assert view.apply(GameStarting("g2")) == [Notify(GameStarting("g2"))]
    assert view.game_id == "g2"
    assert view.called == []
    assert view.cards == {}
    assert view.claims_open


def test_snapshot_resyncs_marks_and_refuses_regressions():
    view = _view()
    game = Game(id="g1", status=GameStatus.ACTIVE, called_numbers=[Call("B", 7), Call("I", 19)], player_count=3)
    assert view.apply(GameStateSnapshot(game)) == []
    assert view.status is GameStatus.ACTIVE
    assert view.players == 3
    assert view.cards[5].cell(2, 1).called

    view.apply(Winner("g1", "u2", "abebe", 50.0))
    stale = Game(id="g1", status=GameStatus.ACTIVE, called_numbers=[Call("B", 7)])
    assert view.sync(stale) == []
    assert view.status is GameStatus.COMPLETED
    assert len(view.called) == 2


def test_snapshot_completing_the_line_offers_a_claim():
    view = _view()
    calls = [Call("B", 7), Call("I", 19), Call("G", 50), Call("O", 71)]
    outcomes = view.sync(Game(id="g1", status=GameStatus.ACTIVE, called_numbers=calls))
    assert outcomes == [ClaimAvailable(game_id="g1", card_number=5, pattern=Pattern("row", 2))]


def test_announced_game_does_not_interrupt_a_running_one():
    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    assert view.apply(GameStarting("g2")) == [Notify(GameStarting("g2"))]
    assert view.game_id == "g1"
    assert 5 in view.cards
    outcomes = view.apply(NumberCalled("g1", "I", 19, current_calls=2))
    assert outcomes == [Notify(NumberCalled("g1", "I", 19, current_calls=2))]
    (won,) = view.apply(Winner("g1", "u1", "me", 50.0))
    assert won.is_local_winner


def test_waiting_view_with_cards_keeps_its_game():
    view = _view()
    view.apply(GameStarting("g2"))
    assert view.game_id == "g1"

    empty = GameView(user_id="u1")
    empty.apply(GameStarting("g1"))
    empty.apply(GameStarting("g2"))
    assert empty.game_id == "g2"


def test_game_ended_without_winner_closes_claims():
    event = parse_event({"type": "gameEnded", "gameId": "g1"})
    assert event == GameEnded("g1")
    assert event.type is EventType.GAME_ENDED

    view = _view()
    view.apply(NumberCalled("g1", "B", 7, current_calls=1))
    assert view.apply(event) == [Notify(GameEnded("g1"))]
    assert view.status is GameStatus.COMPLETED
    assert view.claims_open is False
    assert view.apply(event) == []
    assert view.apply(NumberCalled("g1", "I", 19, current_calls=2)) == []


def test_game_ended_before_any_call_is_ignored():
    view = _view()
    assert view.apply(GameEnded("g1")) == []
    assert view.status is GameStatus.WAITING
