"""Typed command and callback vocabulary of the bot.

Inline-button payloads are ``:``-separated so game ids may contain
underscores; Telegram caps callback data at 64 bytes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Union


class Command(str, enum.Enum):
    START = "start"
    PLAY = "play"
    BALANCE = "balance"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CARDS = "cards"
    STATS = "stats"
    INVITE = "invite"
    HELP = "help"
    MENU = "menu"

    @property
    def description(self) -> str:
        return COMMAND_DESCRIPTIONS[self]


COMMAND_DESCRIPTIONS: Dict[Command, str] = {
    Command.START: "Start the bot and register 🚀",
    Command.PLAY: "Join current game 🎮",
    Command.BALANCE: "Check your balance 💰",
    Command.DEPOSIT: "Deposit funds 💳",
    Command.WITHDRAW: "Withdraw funds 🏧",
    Command.CARDS: "View your cards 🃏",
    Command.STATS: "Your statistics 📊",
    Command.INVITE: "Invite friends 👥",
    Command.HELP: "How to play ❓",
    Command.MENU: "Show main menu 📱",
}


@dataclass(frozen=True)
class JoinGame:
    game_id: str


@dataclass(frozen=True)
class SelectCardPage:
    game_id: str
    page: int = 1


@dataclass(frozen=True)
class BuyCard:
    game_id: str
    card_number: Optional[int] = None  # None buys a random card


@dataclass(frozen=True)
class ClaimBingo:
    game_id: Optional[str] = None


@dataclass(frozen=True)
class PlayGame:
    pass


@dataclass(frozen=True)
class ViewWebApp:
    pass


@dataclass(frozen=True)
class ViewBalance:
    pass


@dataclass(frozen=True)
class DepositMenu:
    pass


@dataclass(frozen=True)
class Deposit:
    amount: Optional[int] = None  # None asks for a custom amount


@dataclass(frozen=True)
class MainMenu:
    pass


@dataclass(frozen=True)
class Support:
    pass


@dataclass(frozen=True)
class Noop:
    pass


CallbackAction = Union[
    PlayGame,
    JoinGame,
    SelectCardPage,
    BuyCard,
    ClaimBingo,
    ViewWebApp,
    ViewBalance,
    DepositMenu,
    Deposit,
    MainMenu,
    Support,
    Noop,
]

CALLBACK_ACTIONS = (
    PlayGame,
    JoinGame,
    SelectCardPage,
    BuyCard,
    ClaimBingo,
    ViewWebApp,
    ViewBalance,
    DepositMenu,
    Deposit,
    MainMenu,
    Support,
    Noop,
)

_SIMPLE = {
    "play": PlayGame,
    "webapp": ViewWebApp,
    "balance": ViewBalance,
    "deposit_menu": DepositMenu,
    "menu": MainMenu,
    "support": Support,
    "noop": Noop,
}

RANDOM = "random"
CUSTOM = "custom"


def callback_data(action: CallbackAction) -> str:
    if isinstance(action, JoinGame):
        return f"join:{action.game_id}"
    if isinstance(action, SelectCardPage):
        return f"cards:{action.game_id}:{action.page}"
    if isinstance(action, BuyCard):
        number = RANDOM if action.card_number is None else action.card_number
        return f"buy:{action.game_id}:{number}"
    if isinstance(action, ClaimBingo):
        return f"claim:{action.game_id}" if action.game_id else "claim"
    if isinstance(action, Deposit):
        return f"deposit:{CUSTOM if action.amount is None else action.amount}"
    for key, kind in _SIMPLE.items():
        if isinstance(action, kind):
            return key
    raise TypeError(f"Not a callback action: {action!r}")


def parse_callback(data: str) -> Optional[CallbackAction]:
    """Parse inline-button data; unknown or malformed payloads return None."""
    if not data:
        return None
    if data in _SIMPLE:
        return _SIMPLE[data]()
    head, _, rest = data.partition(":")
    try:
        if head == "join" and rest:
            return JoinGame(game_id=rest)
        if head == "cards" and rest:
            game_id, _, page = rest.rpartition(":")
            return SelectCardPage(game_id=game_id, page=max(int(page), 1)) if game_id else None
        if head == "buy" and rest:
            game_id, _, number = rest.rpartition(":")
            if not game_id:
                return None
            return BuyCard(game_id=game_id, card_number=None if number == RANDOM else int(number))
        if head == "claim":
            return ClaimBingo(game_id=rest or None)
        if head == "deposit" and rest:
            return Deposit(amount=None if rest == CUSTOM else int(rest))
    except ValueError:
        return None
    return None


QuickAction = Union[Command, CallbackAction]

# Reply-keyboard labels shown under the main menu.
QUICK_ACTIONS: Dict[str, QuickAction] = {
    "🎮 Play Game": Command.PLAY,
    "💰 Wallet": Command.BALANCE,
    "📊 My Cards": Command.CARDS,
    "📈 Statistics": Command.STATS,
    "👥 Invite Friends": Command.INVITE,
    "❓ Help": Command.HELP,
    "📞 Support": Support(),
    "🏆 Claim Bingo": ClaimBingo(),
}

MENU_LAYOUT = (
    ("🎮 Play Game", "💰 Wallet"),
    ("📊 My Cards", "📈 Statistics"),
    ("👥 Invite Friends", "❓ Help"),
)


def parse_quick_action(text: str) -> Optional[QuickAction]:
    return QUICK_ACTIONS.get((text or "").strip())
