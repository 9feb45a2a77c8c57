"""
Per-user conversation memory.

Sessions are created on first use, expire after `ttl_seconds` without
activity, and the least recently used session is evicted once
`max_sessions` is reached. Each session keeps at most `max_messages` turns.
"""

import os
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol
from dotenv import load_dotenv
from app.constants import (
    CONVERSATION_MAX_MESSAGES,
    CONVERSATION_MAX_SESSIONS,
    CONVERSATION_TTL_SECONDS,
)
from app.utils.prompt_helpers import ChatTurn

load_dotenv()


class ConversationStore(Protocol):
    def get_history(self, user_id: str) -> List[ChatTurn]: ...

    def append(self, user_id: str, role: str, content: str) -> None: ...

    def clear(self, user_id: str) -> bool: ...


@dataclass
class _Session:
    messages: List[ChatTurn] = field(default_factory=list)
    last_active: float = 0.0


class InMemoryConversationStore:
    """Process-local ConversationStore with TTL and LRU capacity eviction."""

    def __init__(
        self,
        ttl_seconds: float = CONVERSATION_TTL_SECONDS,
        max_sessions: int = CONVERSATION_MAX_SESSIONS,
        max_messages: int = CONVERSATION_MAX_MESSAGES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_sessions < 1 or max_messages < 1:
            raise ValueError("max_sessions and max_messages must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self.max_messages = max_messages
        self._clock = clock
        self._sessions: "OrderedDict[str, _Session]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: _Session, now: float) -> bool:
        return now - session.last_active > self.ttl_seconds

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [uid for uid, s in self._sessions.items() if self._is_expired(s, now)]
        for uid in expired:
            del self._sessions[uid]
        if expired:
            print(f"[ConversationStore] Evicted {len(expired)} expired sessions")
        return len(expired)

    def _live_session(self, user_id: str) -> Optional[_Session]:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self._is_expired(session, self._clock()):
            del self._sessions[user_id]
            return None
        return session

    def get_history(self, user_id: str) -> List[ChatTurn]:
        session = self._live_session(user_id)
        return [dict(m) for m in session.messages] if session else []

    def append(self, user_id: str, role: str, content: str) -> None:
        session = self._live_session(user_id)
        if session is None:
            self.evict_expired()
            while len(self._sessions) >= self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                print(f"[ConversationStore] Capacity reached, evicted session {evicted}")
            session = _Session()
            self._sessions[user_id] = session

        session.messages.append({"role": role, "content": content})
        if len(session.messages) > self.max_messages:
            del session.messages[: len(session.messages) - self.max_messages]
        session.last_active = self._clock()
        self._sessions.move_to_end(user_id)

    def clear(self, user_id: str) -> bool:
        return self._sessions.pop(user_id, None) is not None

    def stats(self) -> Dict[str, int]:
        return {
            "sessions": len(self._sessions),
            "max_sessions": self.max_sessions,
            "max_messages": self.max_messages,
        }


_conversation_store = None


def get_conversation_store() -> InMemoryConversationStore:
    """Process-wide conversation store configured from the environment."""
    global _conversation_store
    if _conversation_store is None:
        _conversation_store = InMemoryConversationStore(
            ttl_seconds=float(os.getenv("CONVERSATION_TTL_SECONDS", CONVERSATION_TTL_SECONDS)),
            max_sessions=int(os.getenv("CONVERSATION_MAX_SESSIONS", CONVERSATION_MAX_SESSIONS)),
        )
    return _conversation_store
