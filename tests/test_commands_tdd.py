from __future__ import annotations

import pytest
from hypothesis import given, strategies as st

from bingo_bot.commands import (
    CALLBACK_ACTIONS,
    MENU_LAYOUT,
    QUICK_ACTIONS,
    BuyCard,
    ClaimBingo,
    Command,
    Deposit,
    JoinGame,
    MainMenu,
    Noop,
    PlayGame,
    SelectCardPage,
    Support,
    ViewBalance,
    ViewWebApp,
    DepositMenu,
    callback_data,
    parse_callback,
    parse_quick_action,
)

game_ids = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_-:", min_size=1, max_size=24)


def test_every_command_is_described():
    for command in Command:
        assert command.description
    assert [c.value for c in Command][:2] == ["start", "play"]


@pytest.mark.parametrize(
    "action",
    [
        PlayGame(),
        JoinGame("game_1"),
        SelectCardPage("game_1", 3),
        BuyCard("game_1", 17),
        BuyCard("game_1", None),
        ClaimBingo("game_1"),
        ClaimBingo(),
        ViewWebApp(),
        ViewBalance(),
        DepositMenu(),
        Deposit(50),
        Deposit(None),
        MainMenu(),
        Support(),
        Noop(),
    ],
)
def test_callback_data_round_trip(action):
    data = callback_data(action)
    assert len(data.encode("utf-8")) <= 64
    assert parse_callback(data) == action


def test_every_action_type_has_an_example():
    assert {type(a) for a in [PlayGame(), JoinGame("g"), SelectCardPage("g"), BuyCard("g"), ClaimBingo(),
                              ViewWebApp(), ViewBalance(), DepositMenu(), Deposit(), MainMenu(), Support(),
                              Noop()]} == set(CALLBACK_ACTIONS)


@given(game_id=game_ids, page=st.integers(min_value=1, max_value=34))
def test_game_ids_with_separators_survive(game_id, page):
    assert parse_callback(callback_data(SelectCardPage(game_id, page))) == SelectCardPage(game_id, page)
    assert parse_callback(callback_data(BuyCard(game_id, None))) == BuyCard(game_id, None)


@pytest.mark.parametrize("data", ["", "buy", "buy:g1:abc", "cards::2", "deposit:lots", "whatever", "join:"])
def test_malformed_callback_data_is_ignored(data):
    assert parse_callback(data) is None


def test_legacy_page_zero_is_clamped():
    assert parse_callback("cards:g1:0") == SelectCardPage("g1", 1)


def test_quick_actions_cover_the_menu():
    for row in MENU_LAYOUT:
        for label in row:
            assert label in QUICK_ACTIONS
    assert parse_quick_action(" 💰 Wallet ") is Command.BALANCE
    assert parse_quick_action("🏆 Claim Bingo") == ClaimBingo()
    assert parse_quick_action("random chatter") is None
