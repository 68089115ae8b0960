"""Liveness endpoint for the bot process itself.

Serves ``GET /health`` next to the bot in both polling and webhook mode, on
its own port so it never competes with the webhook listener.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from aiohttp import web

logger = logging.getLogger(__name__)

SERVICE_NAME = "telegram-bot"

StatusProvider = Callable[[], Dict[str, Any]]


class HealthServer:
    def __init__(self, status: Optional[StatusProvider] = None, *, port: int, host: str = "0.0.0.0") -> None:
        self.status = status
        self.port = port
        self.host = host
        self.started_at = time.monotonic()
        self.app = web.Application()
        self.app.router.add_get("/health", self._handle_health)
        self._runner: Optional[web.AppRunner] = None

    def report(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": "healthy", "service": SERVICE_NAME}
        body["uptime"] = round(time.monotonic() - self.started_at, 1)
        if self.status is not None:
            body.update(self.status())
        return body

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(self.report())

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Health endpoint listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
