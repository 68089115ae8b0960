"""python-telegram-bot wiring: handlers, push delivery, polling and webhook startup."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

from telegram import BotCommand, Update, User
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .api import BackendClient
from .commands import Command, parse_callback
from .config import Settings
from .errors import ConfigError
from .events import GameEvent
from .gateway import GatewayClient
from .health import HealthServer
from .render import MarkdownRenderer, Reply
from .service import BotService, UserProfile
from .session import SessionStore

logger = logging.getLogger(__name__)

# Pause between messages of one broadcast, to stay under Telegram's flood limits.
BROADCAST_DELAY = 0.05


def profile_from_user(user: User) -> UserProfile:
    return UserProfile(
        telegram_id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
    )


async def send_replies(bot, chat_id: int, replies: Iterable[Reply]) -> None:
    for reply in replies:
        try:
            await bot.send_message(
                chat_id=chat_id,
                text=reply.text,
                parse_mode=reply.parse_mode,
                reply_markup=reply.markup,
            )
        except TelegramError as exc:
            logger.warning("Could not deliver message to chat %s: %s", chat_id, exc)


class TelegramFrontend:
    """Adapts Telegram updates to ``BotService`` calls and delivers gateway notifications."""

    def __init__(
        self,
        service: BotService,
        gateway: Optional[GatewayClient] = None,
        health: Optional[HealthServer] = None,
    ) -> None:
        self.service = service
        self.gateway = gateway
        self.health = health
        self.application: Optional[Application] = None
        self._gateway_task: Optional[asyncio.Task] = None

    def command_callback(self, command: Command):
        async def handle(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
            chat = update.effective_chat
            user = update.effective_user
            if chat is None:
                return
            profile = profile_from_user(user) if user is not None else None
            logger.info("/%s from chat %s", command.value, chat.id)
            replies = await self.service.handle_command(
                command, chat.id, profile=profile, args=tuple(context.args or ())
            )
            await send_replies(context.bot, chat.id, replies)

        return handle

    async def on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        chat = update.effective_chat
        if query is None or chat is None:
            return
        await query.answer()
        action = parse_callback(query.data or "")
        if action is None:
            logger.warning("Ignoring unknown callback data %r from chat %s", query.data, chat.id)
            return
        replies = await self.service.handle_callback(chat.id, action)
        await send_replies(context.bot, chat.id, replies)

    async def on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat = update.effective_chat
        message = update.effective_message
        if chat is None or message is None:
            return
        user = update.effective_user
        replies = await self.service.handle_text(
            chat.id, message.text or "", profile=profile_from_user(user) if user else None
        )
        await send_replies(context.bot, chat.id, replies)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Unhandled error while processing %r", update, exc_info=context.error)
        if isinstance(update, Update) and update.effective_chat is not None:
            await send_replies(
                context.bot, update.effective_chat.id, [self.service.renderer.transport_error("processing your request")]
            )

    def status(self) -> Dict[str, Any]:
        if self.gateway is None:
            gateway = "disabled"
        else:
            gateway = "connected" if self.gateway.connected else "disconnected"
        return {
            "bot": self.service.bot_username,
            "gateway": gateway,
            "games": sorted(self.gateway.games) if self.gateway is not None else [],
            "sessions": len(self.service.sessions),
        }

    async def deliver(self, event: GameEvent) -> None:
        if self.application is None:
            return
        deliveries = await self.service.handle_event(event)
        for chat_id, reply in deliveries:
            await send_replies(self.application.bot, chat_id, [reply])
            await asyncio.sleep(BROADCAST_DELAY)

    async def post_init(self, application: Application) -> None:
        self.application = application
        await application.bot.set_my_commands([BotCommand(c.value, c.description) for c in Command])
        me = await application.bot.get_me()
        self.service.bot_username = me.username
        logger.info("Bot @%s ready", me.username)
        if self.gateway is not None:
            self._gateway_task = asyncio.create_task(self.gateway.run())
        if self.health is not None:
            await self.health.start()

    async def post_shutdown(self, application: Application) -> None:
        if self.health is not None:
            await self.health.stop()
        if self.gateway is not None:
            await self.gateway.close()
        if self._gateway_task is not None:
            self._gateway_task.cancel()
        await self.service.api.aclose()

    def register(self, application: Application) -> None:
        for command in Command:
            application.add_handler(CommandHandler(command.value, self.command_callback(command)))
        application.add_handler(CallbackQueryHandler(self.on_callback))
        application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_text))
        application.add_error_handler(self.on_error)


def build_frontend(settings: Settings) -> TelegramFrontend:
    api = BackendClient(settings.backend_url, timeout=settings.request_timeout)
    renderer = MarkdownRenderer(web_app_url=settings.web_app_url, support_username=settings.support_username)
    gateway = GatewayClient(
        settings.gateway_url,
        reconnect_attempts=settings.reconnect_attempts,
        reconnect_delay=settings.reconnect_delay,
        open_timeout=settings.request_timeout,
    )
    service = BotService(
        api,
        SessionStore(),
        renderer,
        create_game_attempts=settings.create_game_attempts,
        cards_page_size=settings.cards_page_size,
        watch_game=gateway.join,
        unwatch_game=gateway.leave,
    )
    health = HealthServer(port=settings.health_port) if settings.health_port else None
    frontend = TelegramFrontend(service, gateway, health)
    gateway.on_event = frontend.deliver
    if health is not None:
        health.status = frontend.status
    return frontend


def build_application(settings: Settings, frontend: Optional[TelegramFrontend] = None) -> Application:
    if not settings.bot_token:
        raise ConfigError("TELEGRAM_BOT_TOKEN (or BINGO_BOT_BOT_TOKEN) is required")
    frontend = frontend or build_frontend(settings)
    application = (
        Application.builder()
        .token(settings.bot_token)
        .post_init(frontend.post_init)
        .post_shutdown(frontend.post_shutdown)
        .build()
    )
    frontend.register(application)
    return application


def run_bot(settings: Settings) -> None:
    """Start the bot; blocks until interrupted."""
    if settings.mode == "webhook" and not settings.webhook_url:
        raise ConfigError("webhook mode needs webhook_url")
    application = build_application(settings)
    if settings.mode == "webhook":
        path = f"webhook/{settings.bot_token}"
        logger.info("Starting webhook on port %d", settings.port)
        application.run_webhook(
            listen="0.0.0.0",
            port=settings.port,
            url_path=path,
            webhook_url=f"{settings.webhook_url.rstrip('/')}/{path}",
            allowed_updates=Update.ALL_TYPES,
        )
    else:
        logger.info("Starting long polling")
        application.run_polling(allowed_updates=Update.ALL_TYPES)
