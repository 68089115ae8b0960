"""Health checks for the bot process and the services it depends on."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx
import websockets
from telegram import Bot
from telegram.error import TelegramError
from websockets.exceptions import WebSocketException

from .api import BackendClient
from .config import Settings
from .errors import BackendError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthCheck:
    name: str
    healthy: bool
    detail: str = ""


async def check_bot(url: Optional[str], timeout: float) -> HealthCheck:
    """The running bot process, through its own health endpoint."""
    if not url:
        return HealthCheck("bot", False, "health endpoint disabled")
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
        body = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        return HealthCheck("bot", False, f"{url}: {exc}")
    if response.status_code != 200 or not isinstance(body, dict) or body.get("status") != "healthy":
        return HealthCheck("bot", False, f"{url}: HTTP {response.status_code}")
    return HealthCheck("bot", True, f"gateway {body.get('gateway', 'unknown')}, {body.get('sessions', 0)} sessions")


async def check_backend(api: BackendClient) -> List[HealthCheck]:
    checks = [HealthCheck("backend", await api.health(), api.base_url)]
    try:
        game = await api.get_current_game()
    except BackendError as exc:
        checks.append(HealthCheck("current game", False, str(exc)))
    else:
        detail = f"{game.short_id} {game.status.value}, {len(game.called_numbers)} called" if game else "none"
        checks.append(HealthCheck("current game", True, detail))
    return checks


async def check_telegram(token: Optional[str]) -> HealthCheck:
    if not token:
        return HealthCheck("telegram", False, "no bot token configured")
    try:
        async with Bot(token) as bot:
            me = await bot.get_me()
    except TelegramError as exc:
        return HealthCheck("telegram", False, str(exc))
    return HealthCheck("telegram", True, f"@{me.username}")


async def check_gateway(url: str, timeout: float) -> HealthCheck:
    try:
        async with websockets.connect(url, open_timeout=timeout):
            pass
    except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
        return HealthCheck("gateway", False, f"{url}: {exc}")
    return HealthCheck("gateway", True, url)


async def run_checks(settings: Settings, *, api: Optional[BackendClient] = None) -> List[HealthCheck]:
    checks = [await check_bot(settings.health_url, settings.request_timeout)]
    owned = api is None
    api = api or BackendClient(settings.backend_url, timeout=settings.request_timeout)
    try:
        checks += await check_backend(api)
    finally:
        if owned:
            await api.aclose()
    checks.append(await check_telegram(settings.bot_token))
    checks.append(await check_gateway(settings.gateway_url, settings.request_timeout))
    for check in checks:
        if not check.healthy:
            logger.warning("%s unhealthy: %s", check.name, check.detail)
    return checks
