from __future__ import annotations

from telegram import InlineKeyboardMarkup, ReplyKeyboardMarkup
from telegram.constants import ParseMode

from bingo_bot.api import ClaimResult
from bingo_bot.commands import BuyCard, PlayGame, SelectCardPage, callback_data
from bingo_bot.core import Pattern, apply_called_number, build_card
from bingo_bot.events import ClaimAvailable, Game, GameEnded, GameStatus, GameWon, Winner
from bingo_bot.render import MarkdownRenderer, esc, format_card_grid, money

renderer = MarkdownRenderer(web_app_url="https://bingo.example/", support_username="geezbingo_support")


def _card():
    return build_card(
        5,
        {
            "B": [1, 2, 7, 4, 5],
            "I": [16, 17, 19, 20, 21],
            "N": [31, 32, 34, 35],
            "G": [46, 47, 50, 51, 52],
            "O": [61, 62, 71, 64, 65],
        },
    )


def _callbacks(markup: InlineKeyboardMarkup):
    return [b.callback_data for row in markup.inline_keyboard for b in row if b.callback_data]


def test_escaping_of_backend_text():
    assert esc("a_b*c.") == "a\\_b\\*c\\."
    assert money(12.5) == "$12\\.50"
    assert money(None) == "$0\\.00"
    reply = renderer.domain_error("Insufficient balance (need $10.00)")
    assert reply.text == "❌ Insufficient balance \\(need $10\\.00\\)"
    assert reply.parse_mode == ParseMode.MARKDOWN_V2


def test_card_grid_brackets_called_numbers():
    grid = format_card_grid(apply_called_number(_card(), "B", 7))
    lines = grid.splitlines()
    assert len(lines) == 7
    assert "[B07]" in lines[4]
    assert "FREE" in lines[4]
    assert " I19 " in lines[4]


def test_waiting_game_offers_card_purchase():
    game = Game(id="game_123456789", status=GameStatus.WAITING, pot=40, player_count=4, available_cards=396)
    reply = renderer.game_info(game)
    assert "Game \\#game\\_123" in reply.text
    assert "396/400" in reply.text
    data = _callbacks(reply.markup)
    assert callback_data(SelectCardPage(game.id, 1)) in data
    assert callback_data(BuyCard(game.id, None)) in data


def test_active_game_offers_numbers_and_claim():
    reply = renderer.game_info(Game(id="g1", status=GameStatus.ACTIVE))
    assert _callbacks(reply.markup) == ["join:g1", "claim:g1"]


def test_winner_variants():
    event = Winner("g1", "u1", "abebe_1", 90.0)
    mine = renderer.winner(GameWon(event, is_local_winner=True))
    theirs = renderer.winner(GameWon(event, is_local_winner=False))
    assert "YOU WON" in mine.text and "$90\\.00" in mine.text
    assert "*abebe\\_1* won" in theirs.text


def test_claim_prompt_and_result():
    prompt = renderer.claim_available(ClaimAvailable("g1", 5, Pattern("column", 0)))
    assert "column B" in prompt.text
    assert _callbacks(prompt.markup) == ["claim:g1"]
    assert "No winning pattern" in renderer.claim_result(ClaimResult(False)).text


def test_main_menu_is_a_reply_keyboard():
    reply = renderer.main_menu()
    assert isinstance(reply.markup, ReplyKeyboardMarkup)
    assert reply.markup.keyboard[0][0].text == "🎮 Play Game"


def test_web_app_links_use_configured_url():
    reply = renderer.web_app("g1")
    button = reply.markup.inline_keyboard[0][0]
    assert button.web_app.url == "https://bingo.example/game/g1"


def test_game_ended_without_winner():
    reply = renderer.game_ended(GameEnded("game_123456789"))
    assert "Game ended" in reply.text
    assert "\\#game\\_123" in reply.text
    assert "No winner" in reply.text
    assert _callbacks(reply.markup) == [callback_data(PlayGame())]
