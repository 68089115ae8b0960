from __future__ import annotations

import json

import httpx
import pytest
import respx

from bingo_bot.api import BackendClient
from bingo_bot.core import Call
from bingo_bot.errors import BackendRejected, BackendUnavailable
from bingo_bot.events import GameStatus

BASE = "http://backend.test"

GAME = {
    "id": "game_123456789",
    "status": "active",
    "pot": 120,
    "calledNumbers": [{"letter": "B", "number": 7}, "I19"],
    "timeLeft": 240,
    "playerCount": 6,
    "cards_sold": 12,
    "settings": {"bet_amount": 10, "game_duration": 300},
}

CARD = {
    "number": 17,
    "value": 10,
    "numbers": [
        [1, 16, 31, 46, 61],
        [2, 17, 32, 47, 62],
        [7, 19, "FREE", 50, 71],
        [4, 20, 34, 51, 64],
        [5, 21, 35, 52, 65],
    ],
}


@pytest.mark.asyncio
@respx.mock
async def test_current_game_is_parsed():
    respx.get(f"{BASE}/api/games/current").mock(return_value=httpx.Response(200, json={"game": GAME}))
    async with BackendClient(BASE) as api:
        game = await api.get_current_game()
    assert game.id == "game_123456789"
    assert game.status is GameStatus.ACTIVE
    assert game.called_numbers == [Call("B", 7), Call("I", 19)]
    assert game.available_cards == 388
    assert game.bet_amount == 10.0


@pytest.mark.asyncio
@respx.mock
async def test_missing_current_game_is_none():
    respx.get(f"{BASE}/api/games/current").mock(return_value=httpx.Response(404, json={"error": "No game"}))
    async with BackendClient(BASE) as api:
        assert await api.get_current_game() is None


@pytest.mark.asyncio
@respx.mock
async def test_reads_are_retried_once():
    route = respx.get(f"{BASE}/api/users/u1/balance").mock(
        side_effect=[httpx.Response(503), httpx.Response(200, json={"available": 55.5, "inPlay": 10})]
    )
    async with BackendClient(BASE) as api:
        balance = await api.get_balance("u1")
    assert route.call_count == 2
    assert balance.available == 55.5
    assert balance.in_play == 10.0


@pytest.mark.asyncio
@respx.mock
async def test_read_gives_up_after_second_transport_failure():
    route = respx.get(f"{BASE}/api/users/u1/stats").mock(side_effect=httpx.ConnectError("refused"))
    async with BackendClient(BASE) as api:
        with pytest.raises(BackendUnavailable):
            await api.get_user_stats("u1")
    assert route.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_mutations_are_never_retried():
    route = respx.post(f"{BASE}/api/games/g1/buy-card").mock(return_value=httpx.Response(502))
    async with BackendClient(BASE) as api:
        with pytest.raises(BackendUnavailable):
            await api.buy_card("g1", "u1", 17)
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_random_purchase_with_no_cards_left_is_rejected():
    route = respx.post(f"{BASE}/api/games/g1/buy-card").mock(
        return_value=httpx.Response(400, json={"error": "No cards available"})
    )
    async with BackendClient(BASE) as api:
        with pytest.raises(BackendRejected) as info:
            await api.buy_card("g1", "u1", None, chat_id=99)
    assert info.value.message == "No cards available"
    assert info.value.status_code == 400
    assert json.loads(route.calls.last.request.content) == {"userId": "u1", "cardNumber": None, "telegramChatId": 99}


@pytest.mark.asyncio
@respx.mock
async def test_purchase_returns_card_and_balance():
    respx.post(f"{BASE}/api/games/g1/buy-card").mock(
        return_value=httpx.Response(200, json={"success": True, "card": CARD, "newBalance": 40})
    )
    async with BackendClient(BASE) as api:
        purchase = await api.buy_card("g1", "u1", 17)
    assert purchase.card.number == 17
    assert purchase.card.game_id == "g1"
    assert purchase.card.cell(2, 2).free
    assert purchase.new_balance == 40.0


@pytest.mark.asyncio
@respx.mock
async def test_unsuccessful_body_is_rejected():
    respx.post(f"{BASE}/api/games").mock(
        return_value=httpx.Response(200, json={"success": False, "message": "Game already running"})
    )
    async with BackendClient(BASE) as api:
        with pytest.raises(BackendRejected, match="Game already running"):
            await api.create_game()


@pytest.mark.asyncio
@respx.mock
async def test_non_json_response_is_unavailable():
    respx.get(f"{BASE}/api/users/u1/referral").mock(return_value=httpx.Response(200, text="<html>"))
    async with BackendClient(BASE) as api:
        with pytest.raises(BackendUnavailable):
            await api.get_referral_info("u1")


@pytest.mark.asyncio
@respx.mock
async def test_register_falls_back_to_telegram_user_id():
    route = respx.post(f"{BASE}/api/users/telegram").mock(
        return_value=httpx.Response(200, json={"success": True, "isNew": True})
    )
    async with BackendClient(BASE) as api:
        account = await api.register_user(telegram_id=42, username="abebe", first_name="Abebe", chat_id=42)
    assert account.user_id == "telegram_42"
    assert account.is_new
    assert account.bonus == 100.0
    sent = json.loads(route.calls.last.request.content)
    assert sent["telegramId"] == 42
    assert sent["referralCode"] is None


@pytest.mark.asyncio
@respx.mock
async def test_claim_reports_backend_verdict():
    respx.post(f"{BASE}/api/games/claim-bingo").mock(
        return_value=httpx.Response(200, json={"success": False, "message": "No winning pattern"})
    )
    async with BackendClient(BASE) as api:
        result = await api.claim_bingo("g1", "u1", chat_id=7)
    assert result.success is False
    assert result.message == "No winning pattern"


@pytest.mark.asyncio
@respx.mock
async def test_cards_page_and_user_cards():
    respx.get(f"{BASE}/api/games/g1/cards").mock(
        return_value=httpx.Response(200, json={"cards": [{"number": 3}, 9, "bad"], "totalPages": 4})
    )
    respx.get(f"{BASE}/api/users/u1/cards").mock(return_value=httpx.Response(200, json=[{**CARD, "gameId": "g1"}]))
    async with BackendClient(BASE) as api:
        page = await api.get_cards_page("g1", page=2)
        cards = await api.get_user_cards("u1")
    assert page.cards == [3, 9]
    assert page.total_pages == 4
    assert [c.number for c in cards] == [17]
    assert cards[0].game_id == "g1"


@pytest.mark.asyncio
@respx.mock
async def test_health():
    respx.get(f"{BASE}/health").mock(side_effect=[httpx.Response(200), httpx.ConnectError("down")])
    async with BackendClient(BASE) as api:
        assert await api.health() is True
        assert await api.health() is False


@pytest.mark.asyncio
@respx.mock
async def test_purchase_with_incomplete_card_is_unavailable():
    holed = {**CARD, "numbers": [row[:] for row in CARD["numbers"]]}
    holed["numbers"][0][0] = None
    respx.post(f"{BASE}/api/games/g1/buy-card").mock(
        return_value=httpx.Response(200, json={"success": True, "card": holed, "newBalance": 40})
    )
    async with BackendClient(BASE) as api:
        with pytest.raises(BackendUnavailable, match="card payload"):
            await api.buy_card("g1", "u1", 17)


@pytest.mark.asyncio
@respx.mock
async def test_user_cards_skip_incomplete_grids():
    short = {**CARD, "number": 18, "numbers": CARD["numbers"][:3]}
    respx.get(f"{BASE}/api/users/u1/cards").mock(
        return_value=httpx.Response(200, json={"cards": [short, "junk", CARD]})
    )
    async with BackendClient(BASE) as api:
        cards = await api.get_user_cards("u1")
    assert [c.number for c in cards] == [17]
