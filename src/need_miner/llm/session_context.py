# need_miner/llm/session_context.py
"""
Session Context - bounded conversational memory keyed by session id.

Each session holds an ordered message list whose first entry is always the
current system instruction. When the list grows past ``max_context_length``
the oldest turns are dropped whole, so the first message after the system
instruction is always a user turn; the system message stays at
index 0 and the relative order of the survivors is preserved. Older
grounding is lost in exchange for bounded token cost.

The session map itself is bounded too:
- idle sessions older than ``idle_ttl`` are reclaimed by ``sweep()``,
  which ``open()`` runs opportunistically
- at most ``max_sessions`` sessions are kept; the least recently used one
  is evicted when a new session would exceed that

No locking: all access happens on one event loop.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from need_miner.config import DEFAULT_SYSTEM_PROMPT
from need_miner.exceptions import SessionNotFound

logger = logging.getLogger(__name__)


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One chat turn in provider-neutral form."""

    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class Session(BaseModel):
    """A single conversation. ``messages[0]`` is the system instruction."""

    id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_used_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    message_count: int = Field(default=0, description="Messages appended over the session lifetime")


def _coerce_message(message: ChatMessage | dict[str, Any]) -> ChatMessage:
    if isinstance(message, ChatMessage):
        return message
    return ChatMessage.model_validate(message)


def _tail_turns(messages: list[ChatMessage], limit: int) -> list[ChatMessage]:
    """Newest ``limit`` messages, minus any leading replies whose user turn was cut."""
    tail = messages[-limit:] if limit > 0 else []
    start = 0
    while start < len(tail) and tail[start].role != MessageRole.USER:
        start += 1
    return tail[start:]


class SessionContext:
    """
    Bounded map of conversational sessions.

    Examples:
        ```python
        sessions = SessionContext(max_context_length=16)
        sessions.open("s1", "You are a keyword analyst.")
        sessions.append("s1", {"role": "user", "content": "hello"})
        sessions.history("s1")[0].role   # MessageRole.SYSTEM
        ```
    """

    def __init__(
        self,
        max_context_length: int = 16,
        idle_ttl: float = 60 * 60,
        max_sessions: int = 256,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        if max_context_length < 2:
            raise ValueError("max_context_length must leave room for the system message and one turn")
        self.max_context_length = max_context_length
        self.idle_ttl = idle_ttl
        self.max_sessions = max_sessions
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger or logging.getLogger(__name__)
        self._sessions: OrderedDict[str, Session] = OrderedDict()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _touch(self, session: Session) -> None:
        session.last_used_at = self._clock()
        self._sessions.move_to_end(session.id)

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def open(self, session_id: str | None = None, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> Session:
        """
        Return the session for ``session_id``, creating it if needed.

        An existing session keeps its history but its system message is
        replaced by ``system_prompt`` so index 0 is always current.
        """
        self.sweep()

        session_id = session_id or str(uuid.uuid4())
        system = ChatMessage(role=MessageRole.SYSTEM, content=system_prompt)

        session = self._sessions.get(session_id)
        if session is not None:
            session.messages[0] = system
            self._touch(session)
            return session

        while len(self._sessions) >= self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            self._log.info(f"Evicted least recently used session {evicted_id}")

        now = self._clock()
        session = Session(id=session_id, messages=[system], created_at=now, last_used_at=now)
        self._sessions[session_id] = session
        self._log.debug(f"Opened session {session_id}")
        return session

    def append(self, session_id: str, message: ChatMessage | dict[str, Any]) -> None:
        """Append a message, then truncate back under the context bound."""
        session = self.get(session_id)
        session.messages.append(_coerce_message(message))
        session.message_count += 1
        self._touch(session)
        self.truncate(session_id)

    def history(self, session_id: str) -> list[ChatMessage]:
        """Ordered copy of the session's messages, system message first."""
        session = self.get(session_id)
        self._touch(session)
        return list(session.messages)

    def window(self, session_id: str, reserve: int = 0) -> list[ChatMessage]:
        """
        System message plus the newest whole turns that fit the bound with
        ``reserve`` slots left free. The first turn after the system message
        is always a user turn.
        """
        session = self.get(session_id)
        self._touch(session)
        return [session.messages[0], *_tail_turns(session.messages[1:], self.max_context_length - 1 - reserve)]

    def truncate(self, session_id: str) -> int:
        """Drop the oldest turns beyond the bound. Returns how many messages were dropped."""
        session = self.get(session_id)
        kept = _tail_turns(session.messages[1:], self.max_context_length - 1)
        dropped = len(session.messages) - 1 - len(kept)
        if dropped <= 0:
            return 0
        session.messages = [session.messages[0], *kept]
        self._log.debug(f"Truncated session {session_id}: dropped {dropped} messages")
        return dropped

    def close(self, session_id: str) -> bool:
        """Destroy a session. Returns False if it did not exist."""
        removed = self._sessions.pop(session_id, None)
        if removed is not None:
            self._log.debug(f"Closed session {session_id}")
        return removed is not None

    def sweep(self) -> int:
        """Reclaim sessions idle for longer than ``idle_ttl``."""
        now = self._clock()
        stale = [sid for sid, s in self._sessions.items() if (now - s.last_used_at).total_seconds() > self.idle_ttl]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            self._log.info(f"Swept {len(stale)} idle sessions")
        return len(stale)
