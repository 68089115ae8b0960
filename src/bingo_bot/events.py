"""Game projection and the push-notification contract shared by every client.

The backend owns game state; clients only observe it. ``GameView`` is one
session's local projection: it applies gateway events in order, re-marks the
session's cards on every call and reports what the client has to show.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from .core import Call, Card, Pattern, apply_called_number, apply_called_numbers, detect_win, parse_call, parse_calls
from .errors import ProtocolError
from .layout import CARD_POOL_SIZE

logger = logging.getLogger(__name__)


class GameStatus(str, enum.Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"

    def can_transition(self, target: "GameStatus") -> bool:
        return (self, target) in _TRANSITIONS


_TRANSITIONS = {
    (GameStatus.WAITING, GameStatus.ACTIVE),
    (GameStatus.ACTIVE, GameStatus.COMPLETED),
}


class EventType(str, enum.Enum):
    GAME_STARTING = "game_starting"
    NUMBER_CALLED = "number_called"
    PLAYER_JOINED = "player_joined"
    CARD_SOLD = "card_sold"
    WINNER = "winner"
    GAME_ENDING = "game_ending"
    GAME_ENDED = "game_ended"
    GAME_STATE = "game_state"


# Socket.IO style names used by the web client.
_EVENT_ALIASES = {
    "gameStarting": EventType.GAME_STARTING,
    "numberCalled": EventType.NUMBER_CALLED,
    "playerJoined": EventType.PLAYER_JOINED,
    "cardSold": EventType.CARD_SOLD,
    "cardPurchased": EventType.CARD_SOLD,
    "winnerDeclared": EventType.WINNER,
    "gameEnding": EventType.GAME_ENDING,
    "gameEnded": EventType.GAME_ENDED,
    "gameState": EventType.GAME_STATE,
}


@dataclass
class Game:
    """Read-only projection of a backend game."""

    id: str
    status: GameStatus
    pot: float = 0.0
    called_numbers: List[Call] = field(default_factory=list)
    time_left: Optional[int] = None
    player_count: int = 0
    cards_sold: int = 0
    available_cards: int = CARD_POOL_SIZE
    bet_amount: Optional[float] = None
    duration: Optional[int] = None
    start_time: Optional[str] = None

    @property
    def short_id(self) -> str:
        return self.id[:8]


def parse_status(value: Any) -> GameStatus:
    try:
        return GameStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ProtocolError(f"Unknown game status: {value!r}") from exc


def _opt_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _opt_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def game_from_payload(payload: Any) -> Game:
    if not isinstance(payload, Mapping):
        raise ProtocolError(f"Game payload must be an object, got {type(payload).__name__}")
    game_id = payload.get("id") or payload.get("gameId") or payload.get("game_id")
    if not game_id or not isinstance(game_id, (str, int)):
        raise ProtocolError("Game payload has no id")
    settings = payload.get("settings") or {}
    if not isinstance(settings, Mapping):
        raise ProtocolError("Game settings must be an object")
    called = payload.get("calledNumbers") or payload.get("called_numbers") or []
    if not isinstance(called, (list, tuple)):
        raise ProtocolError("calledNumbers must be a list")
    start_time = payload.get("start_time") or payload.get("startTime")
    cards_sold = _opt_int(payload.get("cards_sold", payload.get("cardsSold"))) or 0
    available = _opt_int(payload.get("availableCards", payload.get("available_cards")))
    return Game(
        id=str(game_id),
        status=parse_status(payload.get("status", GameStatus.WAITING.value)),
        pot=_opt_float(payload.get("pot")) or 0.0,
        called_numbers=parse_calls(called),
        time_left=_opt_int(payload.get("timeLeft", payload.get("time_left"))),
        player_count=_opt_int(payload.get("playerCount", payload.get("player_count"))) or 0,
        cards_sold=cards_sold,
        available_cards=available if available is not None else max(CARD_POOL_SIZE - cards_sold, 0),
        bet_amount=_opt_float(settings.get("bet_amount", payload.get("betAmount"))),
        duration=_opt_int(settings.get("game_duration", payload.get("duration"))),
        start_time=str(start_time) if start_time is not None else None,
    )


@dataclass(frozen=True)
class GameStarting:
    game_id: str
    type = EventType.GAME_STARTING


@dataclass(frozen=True)
class NumberCalled:
    game_id: str
    letter: str
    number: int
    current_calls: Optional[int] = None
    type = EventType.NUMBER_CALLED

    @property
    def call(self) -> Call:
        return Call(letter=self.letter, number=self.number)


@dataclass(frozen=True)
class PlayerJoined:
    game_id: str
    username: str
    total_players: int
    type = EventType.PLAYER_JOINED


@dataclass(frozen=True)
class CardSold:
    game_id: str
    card_number: int
    pot: float
    type = EventType.CARD_SOLD


@dataclass(frozen=True)
class Winner:
    game_id: str
    user_id: str
    username: str
    amount: float
    type = EventType.WINNER


@dataclass(frozen=True)
class GameEnding:
    game_id: str
    type = EventType.GAME_ENDING


@dataclass(frozen=True)
class GameEnded:
    """The game ran out of time without a winner."""

    game_id: str
    type = EventType.GAME_ENDED


@dataclass(frozen=True)
class GameStateSnapshot:
    game: Game
    type = EventType.GAME_STATE

    @property
    def game_id(self) -> str:
        return self.game.id


GameEvent = Union[
    GameStarting, NumberCalled, PlayerJoined, CardSold, Winner, GameEnding, GameEnded, GameStateSnapshot
]


def _event_type(raw: Mapping[str, Any]) -> EventType:
    name = raw.get("type") or raw.get("event")
    if not isinstance(name, str):
        raise ProtocolError(f"Event type must be a string, got {name!r}")
    if name in _EVENT_ALIASES:
        return _EVENT_ALIASES[name]
    try:
        return EventType(name)
    except ValueError as exc:
        raise ProtocolError(f"Unknown event type: {name!r}") from exc


def _require(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    raise ProtocolError(f"Event payload is missing {keys[0]!r}")


def _sequence(value: Any) -> Optional[int]:
    if isinstance(value, (list, tuple)):
        return len(value)
    return _opt_int(value)


def parse_event(raw: Mapping[str, Any]) -> GameEvent:
    """Parse a gateway frame into a typed event.

    Frames look like ``{"type": "number_called", "gameId": "...", "data": {...}}``;
    payload keys may also sit at the top level.
    """
    if not isinstance(raw, Mapping):
        raise ProtocolError("Event frame must be an object")
    kind = _event_type(raw)
    data: Dict[str, Any] = dict(raw)
    if isinstance(raw.get("data"), Mapping):
        data.update(raw["data"])

    try:
        if kind is EventType.GAME_STATE:
            source = raw.get("data") if isinstance(raw.get("data"), Mapping) else raw.get("game", raw)
            return GameStateSnapshot(game=game_from_payload(source))

        game_id = _require(data, "gameId", "game_id")
        if not isinstance(game_id, (str, int)):
            raise ProtocolError(f"Malformed game id: {game_id!r}")
        game_id = str(game_id)
        if kind is EventType.GAME_STARTING:
            return GameStarting(game_id=game_id)
        if kind is EventType.NUMBER_CALLED:
            call = parse_call(data)
            if call is None:
                raise ProtocolError(f"Unrecognised call in event: {data.get('number')!r}")
            seq = _sequence(data.get("sequence", data.get("currentCalls", data.get("current_calls"))))
            return NumberCalled(game_id=game_id, letter=call.letter, number=call.number, current_calls=seq)
        if kind is EventType.PLAYER_JOINED:
            return PlayerJoined(
                game_id=game_id,
                username=str(_require(data, "username")),
                total_players=int(_require(data, "totalPlayers", "total_players")),
            )
        if kind is EventType.CARD_SOLD:
            return CardSold(
                game_id=game_id,
                card_number=int(_require(data, "cardNumber", "card_number")),
                pot=float(_require(data, "pot")),
            )
        if kind is EventType.WINNER:
            winner = data.get("winner") if isinstance(data.get("winner"), Mapping) else {}
            return Winner(
                game_id=game_id,
                user_id=str(_require({**winner, **data}, "userId", "user_id", "id")),
                username=str(_require({**winner, **data}, "username", "winnerName")),
                amount=float(_require(data, "amount", "winnings")),
            )
        if kind is EventType.GAME_ENDED:
            return GameEnded(game_id=game_id)
        return GameEnding(game_id=game_id)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Malformed {kind.value} payload: {exc}") from exc


@dataclass(frozen=True)
class Notify:
    event: GameEvent


@dataclass(frozen=True)
class ClaimAvailable:
    game_id: str
    card_number: int
    pattern: Pattern


@dataclass(frozen=True)
class GameWon:
    event: Winner
    is_local_winner: bool


Outcome = Union[Notify, ClaimAvailable, GameWon]


@dataclass
class GameView:
    """One session's projection of one game."""

    game_id: Optional[str] = None
    user_id: Optional[str] = None
    status: GameStatus = GameStatus.WAITING
    pot: float = 0.0
    players: int = 0
    time_left: Optional[int] = None
    called: List[Call] = field(default_factory=list)
    cards: Dict[int, Card] = field(default_factory=dict)
    claims_open: bool = True
    offered: Set[int] = field(default_factory=set)
    pending: Dict[int, Call] = field(default_factory=dict)

    def reset(self, game_id: str, status: GameStatus = GameStatus.WAITING) -> None:
        self.game_id = game_id
        self.status = status
        self.pot = 0.0
        self.players = 0
        self.time_left = None
        self.called = []
        self.cards = {}
        self.claims_open = True
        self.offered = set()
        self.pending = {}

    @property
    def can_switch_games(self) -> bool:
        """A view moves to a newly announced game only when it has nothing at stake."""
        if self.game_id is None or self.status is GameStatus.COMPLETED:
            return True
        return self.status is GameStatus.WAITING and not self.cards

    def _transition(self, target: GameStatus, event: GameEvent) -> bool:
        if self.status is target:
            return True
        if not self.status.can_transition(target):
            logger.warning(
                "Ignoring %s for game %s: %s -> %s is not a valid transition",
                event.type.value,
                self.game_id,
                self.status.value,
                target.value,
            )
            return False
        logger.debug("Game %s: %s -> %s", self.game_id, self.status.value, target.value)
        self.status = target
        return True

    def _check_wins(self) -> List[Outcome]:
        if not self.claims_open or self.game_id is None:
            return []
        outcomes: List[Outcome] = []
        for number, card in self.cards.items():
            if number in self.offered:
                continue
            pattern = detect_win(card)
            if pattern is not None:
                self.offered.add(number)
                outcomes.append(ClaimAvailable(game_id=self.game_id, card_number=number, pattern=pattern))
        return outcomes

    def add_card(self, card: Card) -> List[Outcome]:
        self.cards[card.number] = apply_called_numbers(card, self.called)
        return self._check_wins()

    def sync(self, game: Game) -> List[Outcome]:
        """Adopt a backend snapshot; markings are recomputed from scratch."""
        if self.game_id != game.id:
            cards = {n: c for n, c in self.cards.items() if c.game_id in (None, game.id)}
            self.reset(game.id, game.status)
            self.cards = cards
        elif game.status is not self.status and not self.status.can_transition(game.status):
            logger.warning(
                "Ignoring snapshot for game %s: %s -> %s is not a valid transition",
                game.id,
                self.status.value,
                game.status.value,
            )
            return []
        self.status = game.status
        self.pot = game.pot
        self.players = game.player_count
        self.time_left = game.time_left
        if len(game.called_numbers) >= len(self.called):
            self.called = list(game.called_numbers)
        self.pending = {seq: c for seq, c in self.pending.items() if seq > len(self.called)}
        self.cards = {n: apply_called_numbers(c, self.called) for n, c in self.cards.items()}
        if self.status is GameStatus.COMPLETED:
            self.claims_open = False
        self._drain_pending()
        return self._check_wins()

    def _append_call(self, call: Call) -> None:
        self.called.append(call)
        self.cards = {n: apply_called_number(c, call.letter, call.number) for n, c in self.cards.items()}

    def _drain_pending(self) -> List[NumberCalled]:
        drained: List[NumberCalled] = []
        while len(self.called) + 1 in self.pending:
            seq = len(self.called) + 1
            call = self.pending.pop(seq)
            self._append_call(call)
            drained.append(NumberCalled(str(self.game_id), call.letter, call.number, current_calls=seq))
        return drained

    def _apply_call(self, event: NumberCalled) -> List[NumberCalled]:
        """Apply a call in sequence order; returns the calls that took effect."""
        call = event.call
        seq = event.current_calls
        if seq is None:
            if call in self.called:
                logger.info("Discarding duplicate call %s for game %s", call, self.game_id)
                return []
            self._append_call(call)
            return [event]
        if seq <= len(self.called):
            logger.info("Discarding replayed call %s (#%d) for game %s", call, seq, self.game_id)
            return []
        if seq > len(self.called) + 1:
            logger.warning(
                "Call %s (#%d) for game %s arrived ahead of #%d; holding it",
                call,
                seq,
                self.game_id,
                len(self.called) + 1,
            )
            self.pending[seq] = call
            return []
        self._append_call(call)
        return [event] + self._drain_pending()

    def apply(self, event: GameEvent) -> List[Outcome]:
        if isinstance(event, GameStateSnapshot):
            return self.sync(event.game)

        if isinstance(event, GameStarting):
            if event.game_id != self.game_id:
                if self.can_switch_games:
                    self.reset(event.game_id)
                else:
                    logger.info(
                        "Announcing game %s; session stays on %s game %s",
                        event.game_id,
                        self.status.value,
                        self.game_id,
                    )
                return [Notify(event)]
            if self.status is GameStatus.WAITING:
                return [Notify(event)]
            logger.warning(
                "Ignoring game_starting for game %s already %s", self.game_id, self.status.value
            )
            return []

        if event.game_id != self.game_id:
            logger.warning(
                "Ignoring %s for game %s; session follows %s", event.type.value, event.game_id, self.game_id
            )
            return []

        if isinstance(event, NumberCalled):
            if not self._transition(GameStatus.ACTIVE, event):
                return []
            applied = self._apply_call(event)
            if not applied:
                return []
            return [Notify(e) for e in applied] + self._check_wins()

        if isinstance(event, (PlayerJoined, CardSold)):
            if self.status is GameStatus.COMPLETED:
                logger.warning("Ignoring %s for completed game %s", event.type.value, self.game_id)
                return []
            if isinstance(event, PlayerJoined):
                self.players = event.total_players
            else:
                self.pot = event.pot
            return [Notify(event)]

        if isinstance(event, Winner):
            if self.status is GameStatus.COMPLETED:
                logger.info("Discarding repeated winner event for game %s", self.game_id)
                return []
            if not self._transition(GameStatus.COMPLETED, event):
                return []
            self.claims_open = False
            is_local = self.user_id is not None and str(event.user_id) == str(self.user_id)
            return [GameWon(event=event, is_local_winner=is_local)]

        if isinstance(event, GameEnding):
            if self.status is not GameStatus.ACTIVE or not self.claims_open:
                logger.warning("Ignoring game_ending for game %s in %s", self.game_id, self.status.value)
                return []
            return [Notify(event)]

        if isinstance(event, GameEnded):
            if self.status is GameStatus.COMPLETED:
                logger.info("Discarding game_ended for finished game %s", self.game_id)
                return []
            if not self._transition(GameStatus.COMPLETED, event):
                return []
            self.claims_open = False
            self.pending = {}
            return [Notify(event)]

        raise ProtocolError(f"Unhandled event: {event!r}")
