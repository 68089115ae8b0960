"""
Backend API client.

The backend owns users, balances, games and payouts. Reads are retried once
on transport failure; anything that moves money or claims a win is sent
exactly once and failures are surfaced to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .core import Card, card_from_payload
from .errors import BackendRejected, BackendUnavailable, ProtocolError
from .events import Game, game_from_payload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass
class UserAccount:
    user_id: str
    username: Optional[str]
    balance: float
    referral_code: Optional[str]
    bonus: float = 100.0
    is_new: bool = False


@dataclass
class CardPage:
    cards: List[int]
    page: int
    total_pages: int


@dataclass
class Purchase:
    card: Card
    new_balance: float


@dataclass
class Balance:
    available: float
    in_play: float
    total_won: float
    wallet_address: Optional[str] = None


@dataclass
class ClaimResult:
    success: bool
    amount: Optional[float] = None
    message: Optional[str] = None


@dataclass
class UserStats:
    games_played: int
    games_won: int
    win_rate: float
    total_won: float
    rank: Optional[int]
    level: Optional[str]
    avg_cards_per_game: Optional[float] = None
    biggest_win: Optional[float] = None
    current_streak: Optional[int] = None


@dataclass
class ReferralInfo:
    code: str
    total_referrals: int
    total_earned: float


@dataclass
class DepositInstructions:
    address: str
    network: Optional[str]
    memo: Optional[str]
    currency: Optional[str]


def _error_message(data: Any) -> Optional[str]:
    if not isinstance(data, Mapping):
        return None
    err = data.get("error") or data.get("message")
    if isinstance(err, Mapping):
        err = err.get("message")
    return str(err) if err else None


def _float(data: Mapping[str, Any], *keys: str, default: float = 0.0) -> float:
    for key in keys:
        if data.get(key) is not None:
            try:
                return float(data[key])
            except (TypeError, ValueError):
                break
    return default


def _int(data: Mapping[str, Any], *keys: str, default: int = 0) -> int:
    for key in keys:
        if data.get(key) is not None:
            try:
                return int(data[key])
            except (TypeError, ValueError):
                break
    return default


class BackendClient:
    """Async client for the bingo backend.

    One ``httpx.AsyncClient`` is shared by all calls; close it with
    ``aclose()`` or use the client as an async context manager.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        idempotent: bool,
    ) -> httpx.Response:
        attempts = 2 if idempotent else 1
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(method, path, json=json, params=params)
            except httpx.TransportError as exc:
                logger.warning("%s %s failed (attempt %d/%d): %s", method, path, attempt, attempts, exc)
                if attempt < attempts:
                    continue
                raise BackendUnavailable(f"{method} {path}: {exc}") from exc
            if response.status_code >= 500:
                logger.warning(
                    "%s %s returned %d (attempt %d/%d)", method, path, response.status_code, attempt, attempts
                )
                if attempt < attempts:
                    continue
                raise BackendUnavailable(f"{method} {path}: HTTP {response.status_code}")
            return response
        raise BackendUnavailable(f"{method} {path}: no response")  # pragma: no cover

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        idempotent: bool = False,
        reject_unsuccessful: bool = True,
        allow_list: bool = False,
    ) -> Any:
        response = await self._send(method, path, json=json, params=params, idempotent=idempotent)
        try:
            data = response.json()
        except ValueError:
            data = None
        if response.status_code >= 400:
            raise BackendRejected(
                _error_message(data) or f"Request failed (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        if data is None:
            raise BackendUnavailable(f"{method} {path}: response is not JSON")
        if not isinstance(data, Mapping) and not (allow_list and isinstance(data, list)):
            raise BackendUnavailable(f"{method} {path}: unexpected response shape")
        if reject_unsuccessful and isinstance(data, Mapping) and data.get("success") is False:
            raise BackendRejected(_error_message(data) or "Request was rejected", status_code=response.status_code)
        return data

    def _game(self, payload: Any) -> Game:
        try:
            return game_from_payload(payload)
        except ProtocolError as exc:
            raise BackendUnavailable(f"Unexpected game payload: {exc}") from exc

    def _card(self, payload: Mapping[str, Any]) -> Card:
        try:
            return card_from_payload(payload)
        except (TypeError, ValueError) as exc:
            raise BackendUnavailable(f"Unexpected card payload: {exc}") from exc

    async def register_user(
        self,
        *,
        telegram_id: int,
        username: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str] = None,
        chat_id: Optional[int] = None,
        referral_code: Optional[str] = None,
    ) -> UserAccount:
        data = await self._request(
            "POST",
            "/api/users/telegram",
            json={
                "telegramId": telegram_id,
                "username": username,
                "firstName": first_name,
                "lastName": last_name,
                "chatId": chat_id,
                "referralCode": referral_code,
            },
            reject_unsuccessful=False,
        )
        user = data.get("user") if isinstance(data.get("user"), Mapping) else {}
        if not user and data.get("success") is False:
            raise BackendRejected(_error_message(data) or "Failed to register. Please try again.")
        user_id = user.get("id") or data.get("userId") or f"telegram_{telegram_id}"
        return UserAccount(
            user_id=str(user_id),
            username=user.get("username", username),
            balance=_float(user, "balance"),
            referral_code=user.get("referralCode") or data.get("referralCode"),
            bonus=_float({**data, **user}, "bonus", default=100.0),
            is_new=bool(data.get("isNew", data.get("success", False))),
        )

    async def get_current_game(self) -> Optional[Game]:
        try:
            data = await self._request("GET", "/api/games/current", idempotent=True)
        except BackendRejected as exc:
            if exc.status_code == 404:
                return None
            raise
        payload = data.get("game") if isinstance(data, Mapping) else None
        return self._game(payload) if payload else None

    async def create_game(self) -> Game:
        data = await self._request("POST", "/api/games")
        return self._game(data.get("game") or data)

    async def get_cards_page(self, game_id: str, page: int = 1, page_size: int = 12) -> CardPage:
        data = await self._request(
            "GET",
            f"/api/games/{game_id}/cards",
            params={"page": page, "limit": page_size},
            idempotent=True,
        )
        numbers = []
        for item in data.get("cards") or []:
            raw = item.get("number") if isinstance(item, Mapping) else item
            try:
                numbers.append(int(raw))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed card entry %r", item)
        return CardPage(cards=numbers, page=page, total_pages=max(_int(data, "totalPages", default=1), 1))

    async def buy_card(
        self,
        game_id: str,
        user_id: str,
        card_number: Optional[int] = None,
        *,
        chat_id: Optional[int] = None,
    ) -> Purchase:
        """Buy ``card_number``, or a random free card when it is None. Never retried."""
        data = await self._request(
            "POST",
            f"/api/games/{game_id}/buy-card",
            json={"userId": user_id, "cardNumber": card_number, "telegramChatId": chat_id},
        )
        card_payload = data.get("card")
        if not isinstance(card_payload, Mapping):
            raise BackendUnavailable("Purchase response has no card")
        card_payload = {"gameId": game_id, **card_payload}
        return Purchase(card=self._card(card_payload), new_balance=_float(data, "newBalance"))

    async def get_balance(self, user_id: str) -> Balance:
        data = await self._request("GET", f"/api/users/{user_id}/balance", idempotent=True)
        return Balance(
            available=_float(data, "available"),
            in_play=_float(data, "inPlay"),
            total_won=_float(data, "totalWon"),
            wallet_address=data.get("walletAddress"),
        )

    async def claim_bingo(self, game_id: Optional[str], user_id: str, *, chat_id: Optional[int] = None) -> ClaimResult:
        """Ask the backend to verify a win. Never retried."""
        data = await self._request(
            "POST",
            "/api/games/claim-bingo",
            json={"gameId": game_id, "userId": user_id, "telegramChatId": chat_id},
            reject_unsuccessful=False,
        )
        amount = data.get("amount")
        return ClaimResult(
            success=bool(data.get("success")),
            amount=float(amount) if amount is not None else None,
            message=_error_message(data),
        )

    async def get_user_cards(self, user_id: str) -> List[Card]:
        data = await self._request("GET", f"/api/users/{user_id}/cards", idempotent=True, allow_list=True)
        cards = data.get("cards") if isinstance(data, Mapping) else data
        result: List[Card] = []
        for payload in cards or []:
            if not isinstance(payload, Mapping):
                logger.warning("Skipping card entry %r", payload)
                continue
            try:
                result.append(self._card(payload))
            except BackendUnavailable as exc:
                logger.warning("Skipping card: %s", exc)
        return result

    async def get_user_stats(self, user_id: str) -> UserStats:
        data = await self._request("GET", f"/api/users/{user_id}/stats", idempotent=True)
        rank = data.get("rank")
        return UserStats(
            games_played=_int(data, "gamesPlayed"),
            games_won=_int(data, "gamesWon"),
            win_rate=_float(data, "winRate"),
            total_won=_float(data, "totalWon"),
            rank=int(rank) if rank is not None else None,
            level=str(data["level"]) if data.get("level") is not None else None,
            avg_cards_per_game=data.get("avgCardsPerGame"),
            biggest_win=data.get("biggestWin"),
            current_streak=data.get("currentStreak"),
        )

    async def get_referral_info(self, user_id: str) -> ReferralInfo:
        data = await self._request("GET", f"/api/users/{user_id}/referral", idempotent=True)
        return ReferralInfo(
            code=str(data.get("code", "")),
            total_referrals=_int(data, "totalReferrals"),
            total_earned=_float(data, "totalEarned"),
        )

    async def request_deposit(
        self, user_id: str, amount: Optional[float], *, chat_id: Optional[int] = None
    ) -> DepositInstructions:
        data = await self._request(
            "POST",
            f"/api/users/{user_id}/deposit",
            json={"amount": amount, "telegramChatId": chat_id},
        )
        if not data.get("address"):
            raise BackendUnavailable("Deposit response has no address")
        return DepositInstructions(
            address=str(data["address"]),
            network=data.get("network"),
            memo=data.get("memo"),
            currency=data.get("currency"),
        )

    async def health(self) -> bool:
        """Return True when the backend health endpoint answers 200."""
        try:
            response = await self._client.get("/health", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
