from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .events import GameView


@dataclass
class Session:
    """Per-chat state: who the user is and their projection of the current game."""

    chat_id: int
    user_id: Optional[str] = None
    username: Optional[str] = None
    balance: float = 0.0
    view: GameView = field(default_factory=GameView)

    @property
    def registered(self) -> bool:
        return self.user_id is not None


class SessionStore:
    """Sessions keyed by chat id. Handlers receive the store instead of sharing module state."""

    def __init__(self) -> None:
        self._sessions: Dict[int, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, chat_id: int) -> Optional[Session]:
        return self._sessions.get(chat_id)

    def open(self, chat_id: int, *, user_id: str, username: Optional[str] = None, balance: float = 0.0) -> Session:
        session = self._sessions.get(chat_id)
        if session is None:
            session = Session(chat_id=chat_id)
            self._sessions[chat_id] = session
        session.user_id = user_id
        session.username = username
        session.balance = balance
        session.view.user_id = user_id
        return session

    def close(self, chat_id: int) -> None:
        self._sessions.pop(chat_id, None)

    def watching(self, game_id: str) -> List[Session]:
        return [s for s in self._sessions.values() if s.view.game_id == game_id]
