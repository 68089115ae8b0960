"""Real-time game events pushed by the backend over a websocket."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import websockets
from websockets.exceptions import WebSocketException

from .errors import ProtocolError
from .events import GameEvent, parse_event

logger = logging.getLogger(__name__)

EventHandler = Callable[[GameEvent], Awaitable[None]]


class GatewayClient:
    """Subscribes to game rooms and forwards parsed events to ``on_event``.

    Malformed frames are logged and dropped. After ``reconnect_attempts``
    consecutive failed connections the client gives up; the bot keeps
    serving commands without push notifications.
    """

    def __init__(
        self,
        url: str,
        on_event: Optional[EventHandler] = None,
        *,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        open_timeout: float = 10.0,
        connect: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.url = url
        self.on_event = on_event
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.open_timeout = open_timeout
        self._connect = connect or websockets.connect
        self._games: Set[str] = set()
        self._ws: Any = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def games(self) -> Set[str]:
        return set(self._games)

    async def _send(self, message: Dict[str, Any]) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.send(json.dumps(message))
        except WebSocketException as exc:
            logger.warning("Could not send %s: %s", message.get("action"), exc)

    async def join(self, game_id: str) -> None:
        if game_id in self._games:
            return
        self._games.add(game_id)
        logger.info("Subscribing to game %s", game_id)
        await self._send({"action": "joinGame", "gameId": game_id})

    async def leave(self, game_id: str) -> None:
        if game_id not in self._games:
            return
        self._games.discard(game_id)
        await self._send({"action": "leaveGame", "gameId": game_id})

    async def handle_frame(self, frame: Any) -> None:
        try:
            raw = json.loads(frame)
            if not isinstance(raw, dict):
                raise ProtocolError(f"Frame is not an object: {raw!r}")
            event = parse_event(raw)
        except (ValueError, ProtocolError) as exc:
            logger.warning("Dropping malformed frame: %s", exc)
            return
        if self.on_event is None:
            return
        try:
            await self.on_event(event)
        except Exception:
            logger.exception("Event handler failed for %s", event.type.value)

    async def run(self) -> None:
        failures = 0
        while not self._closed:
            try:
                async with self._connect(self.url, open_timeout=self.open_timeout) as ws:
                    self._ws = ws
                    failures = 0
                    logger.info("Connected to game gateway %s", self.url)
                    for game_id in sorted(self._games):
                        await self._send({"action": "joinGame", "gameId": game_id})
                    async for frame in ws:
                        await self.handle_frame(frame)
                logger.warning("Game gateway closed the connection")
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                failures += 1
                logger.warning(
                    "Game gateway connection failed (%d/%d): %s", failures, self.reconnect_attempts, exc
                )
                if failures >= self.reconnect_attempts:
                    logger.error("Giving up on the game gateway after %d attempts", failures)
                    return
            finally:
                self._ws = None
            if not self._closed:
                await asyncio.sleep(self.reconnect_delay)

    async def close(self) -> None:
        self._closed = True
        ws = self._ws
        if ws is not None:
            await ws.close()
