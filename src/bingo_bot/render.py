"""Chat presentation: every screen and notification the bot sends.

The card model and the event contract know nothing about Telegram; this
module turns them into ``Reply`` objects (text, markup and parse mode).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence
from urllib.parse import quote

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    ReplyKeyboardMarkup,
    WebAppInfo,
)
from telegram.constants import ParseMode
from telegram.helpers import escape_markdown

from .api import Balance, CardPage, ClaimResult, DepositInstructions, Purchase, ReferralInfo, UserAccount, UserStats
from .commands import (
    MENU_LAYOUT,
    BuyCard,
    CallbackAction,
    ClaimBingo,
    Deposit,
    DepositMenu,
    JoinGame,
    MainMenu,
    Noop,
    PlayGame,
    SelectCardPage,
    ViewBalance,
    callback_data,
)
from .core import Card, marked_count, progress
from .events import (
    CardSold,
    ClaimAvailable,
    Game,
    GameEnded,
    GameEnding,
    GameStarting,
    GameStatus,
    GameWon,
    NumberCalled,
    PlayerJoined,
)
from .layout import CARD_POOL_SIZE, COLUMN_LETTERS, GRID_SIZE

CARDS_PER_ROW = 4
CARDS_SHOWN = 5
DEPOSIT_AMOUNTS = ((10, 25, 50), (100, 250, 500))


@dataclass
class Reply:
    text: str
    markup: Optional[object] = None
    parse_mode: Optional[str] = ParseMode.MARKDOWN_V2


def esc(value: object) -> str:
    return escape_markdown(str(value), version=2)


def money(amount: Optional[float]) -> str:
    return esc(f"${(amount or 0.0):.2f}")


def button(text: str, action: CallbackAction) -> InlineKeyboardButton:
    return InlineKeyboardButton(text, callback_data=callback_data(action))


def format_card_grid(card: Card) -> str:
    """Fixed-width grid for a code block; called numbers are bracketed."""
    lines = ["     " + "     ".join(COLUMN_LETTERS), "   " + "─" * (6 * GRID_SIZE)]
    for r, row in enumerate(card.grid):
        text = f"{r + 1} |"
        for cell in row:
            if cell.free:
                text += " FREE "
            elif cell.number is None:
                text += "  --  "
            else:
                label = f"{cell.letter}{cell.number:02d}"
                text += f" [{label}]" if cell.called else f"  {label} "
        lines.append(text)
    return "\n".join(lines)


class MessageRenderer:
    """Presentation interface used by the bot service."""

    def welcome(self, first_name: str, account: UserAccount) -> Reply:
        raise NotImplementedError

    def main_menu(self) -> Reply:
        raise NotImplementedError

    def game_info(self, game: Game) -> Reply:
        raise NotImplementedError

    def creating_game(self) -> Reply:
        raise NotImplementedError

    def game_unavailable(self, attempts: int) -> Reply:
        raise NotImplementedError

    def card_page(self, game_id: str, page: CardPage) -> Reply:
        raise NotImplementedError

    def purchase(self, game_id: str, purchase: Purchase) -> Reply:
        raise NotImplementedError

    def balance(self, balance: Balance) -> Reply:
        raise NotImplementedError

    def deposit_options(self) -> Reply:
        raise NotImplementedError

    def deposit_instructions(self, amount: Optional[int], info: DepositInstructions) -> Reply:
        raise NotImplementedError

    def withdraw(self) -> Reply:
        raise NotImplementedError

    def user_cards(self, cards: Sequence[Card]) -> Reply:
        raise NotImplementedError

    def stats(self, stats: UserStats) -> Reply:
        raise NotImplementedError

    def invite(self, referral: ReferralInfo, bot_username: Optional[str]) -> Reply:
        raise NotImplementedError

    def help(self) -> Reply:
        raise NotImplementedError

    def web_app(self, game_id: Optional[str] = None) -> Reply:
        raise NotImplementedError

    def support(self) -> Reply:
        raise NotImplementedError

    def called_numbers(self, game: Game) -> Reply:
        raise NotImplementedError

    def claim_result(self, result: ClaimResult) -> Reply:
        raise NotImplementedError

    def claims_closed(self) -> Reply:
        raise NotImplementedError

    def not_registered(self) -> Reply:
        raise NotImplementedError

    def transport_error(self, what: str) -> Reply:
        raise NotImplementedError

    def domain_error(self, message: str) -> Reply:
        raise NotImplementedError

    def game_starting(self, event: GameStarting) -> Reply:
        raise NotImplementedError

    def number_called(self, event: NumberCalled) -> Reply:
        raise NotImplementedError

    def player_joined(self, event: PlayerJoined) -> Reply:
        raise NotImplementedError

    def card_sold(self, event: CardSold) -> Reply:
        raise NotImplementedError

    def winner(self, outcome: GameWon) -> Reply:
        raise NotImplementedError

    def game_ending(self, event: GameEnding) -> Reply:
        raise NotImplementedError

    def game_ended(self, event: GameEnded) -> Reply:
        raise NotImplementedError

    def claim_available(self, outcome: ClaimAvailable) -> Reply:
        raise NotImplementedError


class MarkdownRenderer(MessageRenderer):
    """Telegram MarkdownV2 rendering with inline and reply keyboards."""

    def __init__(self, *, web_app_url: str, support_username: str = "geezbingo_support"):
        self.web_app_url = web_app_url.rstrip("/")
        self.support_username = support_username

    def _web_app_button(self, text: str, path: str = "/game") -> InlineKeyboardButton:
        return InlineKeyboardButton(text, web_app=WebAppInfo(url=f"{self.web_app_url}{path}"))

    def welcome(self, first_name: str, account: UserAccount) -> Reply:
        head = f"🎉 *Welcome to GEEZ BINGO, {esc(first_name)}*\\!" if account.is_new else (
            f"🎮 *Welcome back, {esc(first_name)}*\\!"
        )
        lines = [head, ""]
        if account.is_new:
            lines.append(f"💰 *Welcome Bonus*: `{money(account.bonus)}`")
        if account.referral_code:
            lines.append(f"🔑 *Your Referral Code*: `{esc(account.referral_code)}`")
        lines += [
            "",
            "*Get started:*",
            "🎮 Use /play to join current game",
            "💰 Use /balance to check your funds",
            "📱 Use the buttons below for quick actions",
        ]
        markup = InlineKeyboardMarkup(
            [
                [button("🎮 Play Now", PlayGame())],
                [button("💰 Check Balance", ViewBalance())],
            ]
        )
        return Reply("\n".join(lines), markup)

    def main_menu(self) -> Reply:
        markup = ReplyKeyboardMarkup([list(row) for row in MENU_LAYOUT], resize_keyboard=True, one_time_keyboard=False)
        return Reply("📱 *GEEZ BINGO MAIN MENU*\n\nChoose an option:", markup)

    def game_info(self, game: Game) -> Reply:
        lines = [
            f"🎮 *Game \\#{esc(game.short_id)}*",
            "",
            f"*Status*: {esc(game.status.value.upper())}",
            f"*Pot*: `{money(game.pot)}`",
            f"*Players*: {game.player_count}",
            f"*Cards Available*: {game.available_cards}/{CARD_POOL_SIZE}",
        ]
        if game.bet_amount is not None:
            lines.append(f"*Bet per Card*: `{money(game.bet_amount)}`")
        if game.time_left is not None:
            lines.append(f"*Time Left*: {game.time_left} seconds")
        if game.called_numbers:
            lines.append(f"*Numbers Called*: {len(game.called_numbers)}")
        rows: List[List[InlineKeyboardButton]] = []
        if game.status is GameStatus.WAITING:
            rows.append(
                [
                    button("🎯 Select Cards", SelectCardPage(game.id, 1)),
                    button("🎲 Buy Random", BuyCard(game.id, None)),
                ]
            )
        elif game.status is GameStatus.ACTIVE:
            rows.append(
                [
                    button("📞 View Numbers", JoinGame(game.id)),
                    button("🏆 Claim Bingo", ClaimBingo(game.id)),
                ]
            )
        rows.append([self._web_app_button("🌐 Open Web App", f"/game/{game.id}")])
        return Reply("\n".join(lines), InlineKeyboardMarkup(rows))

    def creating_game(self) -> Reply:
        return Reply("📭 No active games\\. Starting a new game\\.\\.\\.")

    def game_unavailable(self, attempts: int) -> Reply:
        return Reply(
            f"❌ Could not start a new game after {attempts} attempts\\. Please try again later\\.",
            InlineKeyboardMarkup([[button("🔙 Main Menu", MainMenu())]]),
        )

    def card_page(self, game_id: str, page: CardPage) -> Reply:
        text = f"🃏 *Select a Card* \\(Page {page.page}/{page.total_pages}\\)"
        if not page.cards:
            text += "\n\nNo cards left on this page\\."
        rows: List[List[InlineKeyboardButton]] = []
        for i in range(0, len(page.cards), CARDS_PER_ROW):
            rows.append([button(f"#{n}", BuyCard(game_id, n)) for n in page.cards[i : i + CARDS_PER_ROW]])
        nav: List[InlineKeyboardButton] = []
        if page.page > 1:
            nav.append(button("⬅️ Previous", SelectCardPage(game_id, page.page - 1)))
        nav.append(button(f"Page {page.page}/{page.total_pages}", Noop()))
        if page.page < page.total_pages:
            nav.append(button("Next ➡️", SelectCardPage(game_id, page.page + 1)))
        rows.append(nav)
        rows.append([button("🎲 Buy Random Card", BuyCard(game_id, None)), button("❌ Cancel", MainMenu())])
        return Reply(text, InlineKeyboardMarkup(rows))

    def purchase(self, game_id: str, purchase: Purchase) -> Reply:
        card = purchase.card
        lines = [f"✅ *Card Purchased* \\#{card.number}", ""]
        if card.value is not None:
            lines.append(f"*Cost*: `{money(card.value)}`")
        lines += [
            f"*New Balance*: `{money(purchase.new_balance)}`",
            "",
            "*Your Card:*",
            "```",
            format_card_grid(card),
            "```",
        ]
        markup = InlineKeyboardMarkup(
            [
                [button("🃏 Buy Another Card", SelectCardPage(game_id, 1))],
                [button("🎮 View Game", JoinGame(game_id))],
            ]
        )
        return Reply("\n".join(lines), markup)

    def balance(self, balance: Balance) -> Reply:
        text = "\n".join(
            [
                "💰 *YOUR BALANCE*",
                "",
                f"*Available*: `{money(balance.available)}`",
                f"*In Play*: `{money(balance.in_play)}`",
                f"*Total Won*: `{money(balance.total_won)}`",
                "",
                f"*Wallet Address*: `{esc(balance.wallet_address or 'Not set')}`",
            ]
        )
        markup = InlineKeyboardMarkup(
            [
                [button("💳 Deposit", DepositMenu()), self._web_app_button("🏧 Withdraw", "/wallet")],
                [button("🔙 Main Menu", MainMenu())],
            ]
        )
        return Reply(text, markup)

    def deposit_options(self) -> Reply:
        text = "\n".join(
            [
                "💳 *DEPOSIT FUNDS*",
                "",
                f"*Minimum deposit*: `{money(10)}`",
                "*Accepted currencies*: USDT, USDC, ETH, BNB",
                "",
                "*Select deposit amount:*",
            ]
        )
        rows = [[button(f"${amount}", Deposit(amount)) for amount in row] for row in DEPOSIT_AMOUNTS]
        rows.append([button("📝 Custom Amount", Deposit(None)), button("💰 View Balance", ViewBalance())])
        rows.append([button("🔙 Back", MainMenu())])
        return Reply(text, InlineKeyboardMarkup(rows))

    def deposit_instructions(self, amount: Optional[int], info: DepositInstructions) -> Reply:
        title = "💳 *DEPOSIT*" if amount is None else f"💳 *DEPOSIT {esc(f'${amount}')}*"
        lines = [
            title,
            "",
            "*Send funds to this address:*",
            f"`{esc(info.address)}`",
            "",
            f"*Network*: {esc(info.network or '-')}",
        ]
        if info.memo:
            lines.append(f"*Memo/Tag*: `{esc(info.memo)}`")
        lines += [
            "",
            "⚠️ *IMPORTANT*:",
            f"• Send only *{esc(info.currency or 'the selected currency')}* to this address",
            "• Include the memo/tag exactly as shown",
            "• Transaction may take 2\\-5 minutes to confirm",
        ]
        return Reply("\n".join(lines), InlineKeyboardMarkup([[button("🔙 Back to Wallet", ViewBalance())]]))

    def withdraw(self) -> Reply:
        return Reply(
            "🏧 *WITHDRAW FUNDS*\n\nWithdrawals are handled in the web app wallet\\.",
            InlineKeyboardMarkup([[self._web_app_button("🏧 Open Wallet", "/wallet")]]),
        )

    def user_cards(self, cards: Sequence[Card]) -> Reply:
        if not cards:
            return Reply("📭 You have no active cards\\. Join a game first\\!")
        lines = [f"🃏 *YOUR CARDS* \\({len(cards)} active\\)", ""]
        for card in cards[:CARDS_SHOWN]:
            game = f" \\(Game {esc(card.game_id[:8])}\\)" if card.game_id else ""
            lines.append(f"*Card \\#{card.number}*{game}")
            lines.append(
                f"Marked: {marked_count(card)}/{GRID_SIZE * GRID_SIZE} \\| "
                f"Progress: {int(progress(card) * 100)}% \\| Value: {money(card.value if card.value is not None else 10)}"
            )
            lines.append("")
        if len(cards) > CARDS_SHOWN:
            lines.append(f"*\\.\\.\\. and {len(cards) - CARDS_SHOWN} more cards*")
        markup = InlineKeyboardMarkup(
            [
                [button("🎮 View Active Game", PlayGame())],
                [self._web_app_button("🌐 Open Web App")],
                [button("🔙 Main Menu", MainMenu())],
            ]
        )
        return Reply("\n".join(lines).rstrip(), markup)

    def stats(self, stats: UserStats) -> Reply:
        lines = [
            "📊 *YOUR STATISTICS*",
            "",
            f"*Games Played*: {stats.games_played}",
            f"*Games Won*: {stats.games_won}",
            f"*Win Rate*: {esc(f'{stats.win_rate:g}')}%",
            f"*Total Won*: {money(stats.total_won)}",
        ]
        if stats.avg_cards_per_game is not None:
            lines.append(f"*Avg\\. Cards/Game*: {esc(stats.avg_cards_per_game)}")
        if stats.biggest_win is not None:
            lines.append(f"*Best Win*: {money(stats.biggest_win)}")
        if stats.current_streak is not None:
            lines.append(f"*Current Streak*: {stats.current_streak} games")
        lines.append("")
        if stats.rank is not None:
            lines.append(f"*Rank*: \\#{stats.rank} on leaderboard")
        if stats.level is not None:
            lines.append(f"*Level*: {esc(stats.level)}")
        markup = InlineKeyboardMarkup(
            [[self._web_app_button("📈 View Charts", "/stats")], [button("🔙 Main Menu", MainMenu())]]
        )
        return Reply("\n".join(lines).rstrip(), markup)

    def invite(self, referral: ReferralInfo, bot_username: Optional[str]) -> Reply:
        link = f"https://t.me/{bot_username}?start={referral.code}" if bot_username else None
        lines = ["👥 *INVITE FRIENDS & EARN*", "", f"*Your Referral Code*: `{esc(referral.code)}`"]
        if link:
            lines += ["", "*Share this link:*", esc(link)]
        lines += [
            "",
            "*Earn 10%* of your friends' first deposit\\!",
            f"Plus get {money(5)} when they play their first game\\.",
            "",
            "*Your Earnings*:",
            f"👥 Referrals: {referral.total_referrals}",
            f"💰 Earned: {money(referral.total_earned)}",
        ]
        share = "https://t.me/share/url?url={}&text={}".format(
            quote(link or f"Join me on Geez Bingo! Use my code: {referral.code}"),
            quote("Play exciting Bingo games and win big! 🎰"),
        )
        markup = InlineKeyboardMarkup(
            [[InlineKeyboardButton("📱 Share Invite Link", url=share)], [button("🔙 Main Menu", MainMenu())]]
        )
        return Reply("\n".join(lines), markup)

    def help(self) -> Reply:
        support = esc(f"@{self.support_username}")
        text = f"""❓ *HOW TO PLAY GEEZ BINGO*

🎮 *Game Rules:*
1\\. Buy cards while the game is waiting
2\\. Numbers are called automatically
3\\. Cards are marked for you as numbers are called
4\\. Complete a row, column or diagonal and claim BINGO\\!
5\\. The backend verifies every claim before paying out

🃏 *Cards:*
• 400 unique cards per game
• Use /play to view and buy cards

🏆 *Winning Patterns:*
• 5 in a row \\(horizontal\\)
• 5 in a column \\(vertical\\)
• 5 diagonal \\(the FREE center counts\\)

*Commands:*
/play \\- Join current game
/balance \\- Check balance
/deposit \\- Add funds
/withdraw \\- Withdraw funds
/cards \\- View your cards
/stats \\- Your statistics
/invite \\- Invite friends
/help \\- This message
/menu \\- Show main menu

*Need Help\\?*
Contact {support}"""
        markup = InlineKeyboardMarkup(
            [
                [button("🎮 Play Now", PlayGame())],
                [button("💰 Deposit Funds", DepositMenu())],
                [InlineKeyboardButton("📞 Contact Support", url=f"https://t.me/{self.support_username}")],
            ]
        )
        return Reply(text, markup)

    def web_app(self, game_id: Optional[str] = None) -> Reply:
        text = "\n".join(
            [
                "🌐 *OPEN WEB APP*",
                "",
                "For the best gaming experience, open our web app:",
                "",
                "• Full screen game view",
                "• Interactive card marking",
                "• Live game statistics",
                "• Multiple card management",
            ]
        )
        path = f"/game/{game_id}" if game_id else "/game"
        return Reply(text, InlineKeyboardMarkup([[self._web_app_button("🎮 Open Game Interface", path)]]))

    def support(self) -> Reply:
        return Reply(f"📞 Contact support: {esc('@' + self.support_username)}")

    def called_numbers(self, game: Game) -> Reply:
        if not game.called_numbers:
            calls = "No numbers called yet\\."
        else:
            calls = esc(" ".join(str(c) for c in game.called_numbers))
        text = f"📞 *Called Numbers* \\(Game \\#{esc(game.short_id)}\\)\n\n{calls}"
        markup = InlineKeyboardMarkup(
            [[button("🏆 Claim Bingo", ClaimBingo(game.id)), button("🔄 Refresh", JoinGame(game.id))]]
        )
        return Reply(text, markup)

    def claim_result(self, result: ClaimResult) -> Reply:
        if result.success:
            if result.amount is not None:
                return Reply(f"🎉 *BINGO\\!* Verified\\. You won {money(result.amount)}\\!")
            return Reply("🎉 BINGO\\! Your win is being verified\\.\\.\\.")
        reason = result.message or "No winning pattern found on your cards."
        return Reply(f"❌ {esc(reason)}")

    def claims_closed(self) -> Reply:
        return Reply("⛔ This game is over\\. Claims are closed\\.")

    def not_registered(self) -> Reply:
        return Reply("Please send /start first\\.")

    def transport_error(self, what: str) -> Reply:
        return Reply(
            f"❌ Error {esc(what)}\\. The game server is not responding, please try again\\.",
            InlineKeyboardMarkup([[button("🔙 Main Menu", MainMenu())]]),
        )

    def domain_error(self, message: str) -> Reply:
        return Reply(f"❌ {esc(message)}")

    def game_starting(self, event: GameStarting) -> Reply:
        markup = InlineKeyboardMarkup([[button("🎯 Buy Cards", SelectCardPage(event.game_id, 1))]])
        return Reply(f"🎮 *Game Starting* \\#{esc(event.game_id[:8])}\n\nGet ready\\!", markup)

    def number_called(self, event: NumberCalled) -> Reply:
        count = f"\n\nCurrent calls: {event.current_calls}" if event.current_calls is not None else ""
        markup = InlineKeyboardMarkup([[button("🎮 View Game", JoinGame(event.game_id))]])
        return Reply(f"📢 *{esc(event.call)}* called\\!{count}", markup)

    def player_joined(self, event: PlayerJoined) -> Reply:
        return Reply(f"👤 *{esc(event.username)}* joined the game\\!\n\nPlayers: {event.total_players}")

    def card_sold(self, event: CardSold) -> Reply:
        return Reply(f"🃏 Card \\#{event.card_number} sold\\!\n\nPot: {money(event.pot)}")

    def winner(self, outcome: GameWon) -> Reply:
        event = outcome.event
        if outcome.is_local_winner:
            text = f"🏆 *BINGO\\! YOU WON* {money(event.amount)}\\!\n\nCongratulations\\!"
        else:
            text = f"🏆 *{esc(event.username)}* won {money(event.amount)}\\!\n\nBetter luck next time\\!"
        return Reply(text, InlineKeyboardMarkup([[button("🎮 Play Again", PlayGame())]]))

    def game_ending(self, event: GameEnding) -> Reply:
        markup = InlineKeyboardMarkup([[button("🏆 Claim Bingo", ClaimBingo(event.game_id))]])
        return Reply("⏰ *Game ending soon*\n\nLast chance to claim bingo\\!", markup)

    def game_ended(self, event: GameEnded) -> Reply:
        markup = InlineKeyboardMarkup([[button("🎮 Play Again", PlayGame())]])
        return Reply(f"⏰ *Game ended* \\#{esc(event.game_id[:8])}\n\nNo winner this round\\.", markup)

    def claim_available(self, outcome: ClaimAvailable) -> Reply:
        markup = InlineKeyboardMarkup([[button("🏆 Claim Bingo", ClaimBingo(outcome.game_id))]])
        return Reply(
            f"🎯 Card \\#{outcome.card_number} has a full {esc(outcome.pattern.label)}\\! Claim it now\\.",
            markup,
        )
