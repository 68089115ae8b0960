"""Transport-independent bot logic.

Every entry point returns the replies to send instead of talking to Telegram,
and converts backend failures into user-facing messages: transport failures
become a generic retry prompt, rejections are shown verbatim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .api import BackendClient
from .commands import (
    CALLBACK_ACTIONS,
    BuyCard,
    CallbackAction,
    ClaimBingo,
    Command,
    Deposit,
    DepositMenu,
    JoinGame,
    MainMenu,
    Noop,
    PlayGame,
    SelectCardPage,
    Support,
    ViewBalance,
    ViewWebApp,
    parse_quick_action,
)
from .core import Card
from .errors import BackendError, BackendRejected, BackendUnavailable, ProtocolError
from .events import (
    CardSold,
    ClaimAvailable,
    Game,
    GameEnded,
    GameEnding,
    GameEvent,
    GameStarting,
    GameWon,
    NumberCalled,
    Outcome,
    PlayerJoined,
    Winner,
)
from .render import MessageRenderer, Reply
from .session import Session, SessionStore

logger = logging.getLogger(__name__)

Replies = List[Reply]
Delivery = Tuple[int, Reply]


@dataclass(frozen=True)
class UserProfile:
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class BotService:
    def __init__(
        self,
        api: BackendClient,
        sessions: SessionStore,
        renderer: MessageRenderer,
        *,
        create_game_attempts: int = 3,
        cards_page_size: int = 12,
        watch_game: Optional[Callable[[str], Awaitable[None]]] = None,
        unwatch_game: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> None:
        if create_game_attempts < 1:
            raise ValueError("create_game_attempts must be >= 1")
        self.api = api
        self.sessions = sessions
        self.renderer = renderer
        self.create_game_attempts = create_game_attempts
        self.cards_page_size = cards_page_size
        self.bot_username: Optional[str] = None
        self._watch_game = watch_game
        self._unwatch_game = unwatch_game

        self._commands: Dict[Command, Callable[[int], Awaitable[Replies]]] = {
            Command.PLAY: self.play,
            Command.BALANCE: self.balance,
            Command.DEPOSIT: self.deposit_menu,
            Command.WITHDRAW: self.withdraw,
            Command.CARDS: self.cards,
            Command.STATS: self.stats,
            Command.INVITE: self.invite,
            Command.HELP: self.help,
            Command.MENU: self.menu,
        }
        self._callbacks: Dict[type, Callable[[int, CallbackAction], Awaitable[Replies]]] = {
            PlayGame: lambda chat_id, _a: self.play(chat_id),
            JoinGame: self._on_join_game,
            SelectCardPage: self._on_select_cards,
            BuyCard: self._on_buy_card,
            ClaimBingo: self._on_claim,
            ViewWebApp: lambda chat_id, _a: self.web_app(chat_id),
            ViewBalance: lambda chat_id, _a: self.balance(chat_id),
            DepositMenu: lambda chat_id, _a: self.deposit_menu(chat_id),
            Deposit: self._on_deposit,
            MainMenu: lambda chat_id, _a: self.menu(chat_id),
            Support: lambda chat_id, _a: self.support(chat_id),
            Noop: self._on_noop,
        }
        # /start carries the user's profile and is dispatched separately.
        missing_commands = set(Command) - set(self._commands) - {Command.START}
        missing_actions = set(CALLBACK_ACTIONS) - set(self._callbacks)
        if missing_commands or missing_actions:
            raise RuntimeError(f"Unhandled commands {missing_commands} or callbacks {missing_actions}")

    # -- dispatch ---------------------------------------------------------

    async def handle_command(
        self,
        command: Command,
        chat_id: int,
        *,
        profile: Optional[UserProfile] = None,
        args: Sequence[str] = (),
    ) -> Replies:
        if command is Command.START:
            if profile is None:
                raise ValueError("/start needs the sender's profile")
            return await self.start(chat_id, profile, referral_code=args[0] if args else None)
        return await self._commands[command](chat_id)

    async def handle_callback(self, chat_id: int, action: CallbackAction) -> Replies:
        return await self._callbacks[type(action)](chat_id, action)

    async def handle_text(self, chat_id: int, text: str, *, profile: Optional[UserProfile] = None) -> Replies:
        action = parse_quick_action(text)
        if action is None:
            return []
        if isinstance(action, Command):
            return await self.handle_command(action, chat_id, profile=profile)
        return await self.handle_callback(chat_id, action)

    async def _guarded(self, what: str, fn: Callable[[], Awaitable[Replies]]) -> Replies:
        try:
            return await fn()
        except BackendRejected as exc:
            logger.info("Backend rejected %s: %s", what, exc.message)
            return [self.renderer.domain_error(exc.message)]
        except BackendUnavailable as exc:
            logger.error("Backend unavailable while %s: %s", what, exc)
            return [self.renderer.transport_error(what)]

    def _outcome_replies(self, outcomes: Sequence[Outcome]) -> Replies:
        return [self.render_outcome(o) for o in outcomes]

    async def _watch(self, game_id: str) -> None:
        if self._watch_game is not None:
            await self._watch_game(game_id)

    async def _release(self, game_id: Optional[str], *, finished: bool = False) -> None:
        """Unsubscribe from a game that is over or that no session follows any more."""
        if game_id is None or self._unwatch_game is None:
            return
        if not finished and self.sessions.watching(game_id):
            return
        logger.info("Leaving game %s", game_id)
        await self._unwatch_game(game_id)

    async def _follow(self, session: Session, game: Game) -> Replies:
        previous = session.view.game_id
        outcomes = session.view.sync(game)
        if previous != game.id:
            await self._watch(game.id)
            await self._release(previous)
        return self._outcome_replies(outcomes)

    # -- commands ---------------------------------------------------------

    async def start(self, chat_id: int, profile: UserProfile, *, referral_code: Optional[str] = None) -> Replies:
        async def run() -> Replies:
            account = await self.api.register_user(
                telegram_id=profile.telegram_id,
                username=profile.username,
                first_name=profile.first_name,
                last_name=profile.last_name,
                chat_id=chat_id,
                referral_code=referral_code,
            )
            self.sessions.open(chat_id, user_id=account.user_id, username=account.username, balance=account.balance)
            logger.info("Chat %s registered as user %s", chat_id, account.user_id)
            return [self.renderer.welcome(profile.first_name or profile.username or "player", account), self.renderer.main_menu()]

        return await self._guarded("registering", run)

    async def _create_game(self) -> Optional[Game]:
        """Create a game, giving up after ``create_game_attempts`` failures."""
        for attempt in range(1, self.create_game_attempts + 1):
            try:
                return await self.api.create_game()
            except BackendError as exc:
                logger.warning("Creating a game failed (attempt %d/%d): %s", attempt, self.create_game_attempts, exc)
            game = await self.api.get_current_game()
            if game is not None:
                return game
        return None

    async def play(self, chat_id: int) -> Replies:
        async def run() -> Replies:
            replies: Replies = []
            game = await self.api.get_current_game()
            if game is None:
                replies.append(self.renderer.creating_game())
                game = await self._create_game()
                if game is None:
                    logger.error("No game after %d creation attempts", self.create_game_attempts)
                    return replies + [self.renderer.game_unavailable(self.create_game_attempts)]
            replies.append(self.renderer.game_info(game))
            session = self.sessions.get(chat_id)
            if session is not None:
                replies += await self._follow(session, game)
            return replies

        return await self._guarded("loading game", run)

    async def balance(self, chat_id: int) -> Replies:
        session = self.sessions.get(chat_id)
        if session is None:
            return [self.renderer.not_registered()]

        async def run() -> Replies:
            balance = await self.api.get_balance(session.user_id)
            session.balance = balance.available
            return [self.renderer.balance(balance)]

        return await self._guarded("loading balance", run)

    async def deposit_menu(self, chat_id: int) -> Replies:
        return [self.renderer.deposit_options()]

    async def withdraw(self, chat_id: int) -> Replies:
        return [self.renderer.withdraw()]

    async def cards(self, chat_id: int) -> Replies:
        session = self.sessions.get(chat_id)
        if session is None:
            return [self.renderer.not_registered()]

        async def run() -> Replies:
            cards = await self.api.get_user_cards(session.user_id)
            game = await self.api.get_current_game()
            replies: Replies = []
            if game is not None:
                replies += await self._follow(session, game)
                for card in cards:
                    if card.game_id in (None, game.id):
                        replies += self._outcome_replies(session.view.add_card(card))
            shown: List[Card] = [session.view.cards.get(c.number, c) if c.game_id in (None, session.view.game_id) else c for c in cards]
            return [self.renderer.user_cards(shown)] + replies

        return await self._guarded("loading your cards", run)

    async def stats(self, chat_id: int) -> Replies:
        session = self.sessions.get(chat_id)
        if session is None:
            return [self.renderer.not_registered()]

        async def run() -> Replies:
            return [self.renderer.stats(await self.api.get_user_stats(session.user_id))]

        return await self._guarded("loading statistics", run)

    async def invite(self, chat_id: int) -> Replies:
        session = self.sessions.get(chat_id)
        if session is None:
            return [self.renderer.not_registered()]

        async def run() -> Replies:
            referral = await self.api.get_referral_info(session.user_id)
            return [self.renderer.invite(referral, self.bot_username)]

        return await self._guarded("loading referral info", run)

    async def help(self, chat_id: int) -> Replies:
        return [self.renderer.help()]

    async def menu(self, chat_id: int) -> Replies:
        return [self.renderer.main_menu()]

    async def web_app(self, chat_id: int) -> Replies:
        session = self.sessions.get(chat_id)
        return [self.renderer.web_app(session.view.game_id if session else None)]

    async def support(self, chat_id: int) -> Replies:
        return [self.renderer.support()]

    # -- callbacks --------------------------------------------------------

    async def _on_noop(self, chat_id: int, action: CallbackAction) -> Replies:
        return []

    async def _on_join_game(self, chat_id: int, action: JoinGame) -> Replies:
        async def run() -> Replies:
            game = await self.api.get_current_game()
            if game is None or game.id != action.game_id:
                logger.info("Game %s is no longer current", action.game_id)
                return await self.play(chat_id)
            replies = [self.renderer.called_numbers(game)]
            session = self.sessions.get(chat_id)
            if session is not None:
                replies += await self._follow(session, game)
            return replies

        return await self._guarded("loading game", run)

    async def _on_select_cards(self, chat_id: int, action: SelectCardPage) -> Replies:
        async def run() -> Replies:
            page = await self.api.get_cards_page(action.game_id, action.page, self.cards_page_size)
            return [self.renderer.card_page(action.game_id, page)]

        return await self._guarded("loading cards", run)

    async def _on_buy_card(self, chat_id: int, action: BuyCard) -> Replies:
        session = self.sessions.get(chat_id)
        if session is None:
            return [self.renderer.not_registered()]

        async def run() -> Replies:
            purchase = await self.api.buy_card(action.game_id, session.user_id, action.card_number, chat_id=chat_id)
            logger.info("User %s bought card %d in game %s", session.user_id, purchase.card.number, action.game_id)
            session.balance = purchase.new_balance
            replies = [self.renderer.purchase(action.game_id, purchase)]
            previous = session.view.game_id
            if previous != action.game_id:
                session.view.reset(action.game_id)
                await self._watch(action.game_id)
                await self._release(previous)
            replies += self._outcome_replies(session.view.add_card(purchase.card))
            return replies

        return await self._guarded("purchasing card", run)

    async def _on_claim(self, chat_id: int, action: ClaimBingo) -> Replies:
        session = self.sessions.get(chat_id)
        if session is None:
            return [self.renderer.not_registered()]

        async def run() -> Replies:
            game_id = action.game_id or session.view.game_id
            if game_id is None:
                game = await self.api.get_current_game()
                game_id = game.id if game is not None else None
            if game_id is None:
                return [self.renderer.domain_error("There is no active game to claim.")]
            if game_id == session.view.game_id and not session.view.claims_open:
                return [self.renderer.claims_closed()]
            result = await self.api.claim_bingo(game_id, session.user_id, chat_id=chat_id)
            logger.info("Claim by user %s in game %s: success=%s", session.user_id, game_id, result.success)
            return [self.renderer.claim_result(result)]

        return await self._guarded("checking for bingo", run)

    async def _on_deposit(self, chat_id: int, action: Deposit) -> Replies:
        session = self.sessions.get(chat_id)
        if session is None:
            return [self.renderer.not_registered()]

        async def run() -> Replies:
            info = await self.api.request_deposit(session.user_id, action.amount, chat_id=chat_id)
            return [self.renderer.deposit_instructions(action.amount, info)]

        return await self._guarded("processing deposit", run)

    # -- push notifications -----------------------------------------------

    def render_outcome(self, outcome: Outcome) -> Reply:
        if isinstance(outcome, GameWon):
            return self.renderer.winner(outcome)
        if isinstance(outcome, ClaimAvailable):
            return self.renderer.claim_available(outcome)
        event = outcome.event
        if isinstance(event, GameStarting):
            return self.renderer.game_starting(event)
        if isinstance(event, NumberCalled):
            return self.renderer.number_called(event)
        if isinstance(event, PlayerJoined):
            return self.renderer.player_joined(event)
        if isinstance(event, CardSold):
            return self.renderer.card_sold(event)
        if isinstance(event, GameEnding):
            return self.renderer.game_ending(event)
        if isinstance(event, GameEnded):
            return self.renderer.game_ended(event)
        raise ProtocolError(f"No notification for {event!r}")

    async def handle_event(self, event: GameEvent) -> List[Delivery]:
        """Apply a gateway event to every interested session and collect the notifications."""
        if isinstance(event, GameStarting):
            targets = [s for s in self.sessions if s.registered]
        else:
            targets = self.sessions.watching(event.game_id)
        previous = {s.view.game_id for s in targets}
        deliveries: List[Delivery] = []
        for session in targets:
            try:
                outcomes = session.view.apply(event)
                deliveries += [(session.chat_id, self.render_outcome(o)) for o in outcomes]
            except ProtocolError as exc:
                logger.warning("Dropping %s for chat %s: %s", event.type.value, session.chat_id, exc)

        if isinstance(event, GameStarting):
            if any(s.view.game_id == event.game_id for s in targets):
                await self._watch(event.game_id)
            for game_id in sorted(g for g in previous if g is not None and g != event.game_id):
                await self._release(game_id)
        elif isinstance(event, (Winner, GameEnded)):
            await self._release(event.game_id, finished=True)
        return deliveries
