"""Cancellable output buffer for one in-flight generation."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from aegisAgent.utils.error_handler import StreamStateError

LOGGER = logging.getLogger("aegis.streaming")


class StreamState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StreamSession:
    """Append-only buffer with ``active`` / ``cancelled`` flags.

    States move ``idle → active → {completed, cancelled}``. ``append`` is only
    valid while active. ``cancel`` is idempotent, may be called from a chunk
    callback, and keeps whatever was already appended. Producers check
    ``is_cancelled()`` after every ``append`` and stop when it is set.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.created_at = datetime.now(timezone.utc)
        self._buffer = ""
        self._state = StreamState.IDLE

    def __repr__(self) -> str:
        return f"StreamSession(id={self.id!r}, state={self._state.value}, chars={len(self._buffer)})"

    @property
    def state(self) -> StreamState:
        return self._state

    def __len__(self) -> int:
        return len(self._buffer)

    def start(self) -> None:
        if self._state is not StreamState.IDLE:
            raise StreamStateError(f"Cannot start stream {self.id} in state {self._state.value}")
        self._state = StreamState.ACTIVE
        LOGGER.debug(f"Stream {self.id} started")

    def append(self, delta: str) -> None:
        if self._state is not StreamState.ACTIVE:
            raise StreamStateError(f"Cannot append to stream {self.id} in state {self._state.value}")
        if not delta:
            return
        self._buffer += delta

    def read(self) -> str:
        return self._buffer

    def read_new(self, offset: int) -> str:
        """Buffer content from character ``offset`` on."""
        return self._buffer[max(offset, 0):]

    def complete(self) -> None:
        """Natural end of the stream; no effect once terminal."""
        if self._state is StreamState.ACTIVE:
            self._state = StreamState.COMPLETED
            LOGGER.debug(f"Stream {self.id} completed ({len(self._buffer)} chars)")

    def cancel(self) -> None:
        if self._state in (StreamState.IDLE, StreamState.ACTIVE):
            self._state = StreamState.CANCELLED
            LOGGER.info(f"Stream {self.id} cancelled after {len(self._buffer)} chars")

    def clear(self) -> None:
        """Reset a finished session so it can be started again."""
        if self._state is StreamState.ACTIVE:
            raise StreamStateError(f"Cannot clear active stream {self.id}")
        self._buffer = ""
        self._state = StreamState.IDLE

    def is_active(self) -> bool:
        return self._state is StreamState.ACTIVE

    def is_cancelled(self) -> bool:
        return self._state is StreamState.CANCELLED

    def is_completed(self) -> bool:
        return self._state is StreamState.COMPLETED


class StreamSessionRegistry:
    """One stream session per conversation.

    Lets another coroutine (or thread) find the running session to cancel it.
    """

    def __init__(self):
        self._sessions: Dict[str, StreamSession] = {}
        self._lock = threading.Lock()

    def open(self, conversation_id: str) -> StreamSession:
        with self._lock:
            existing = self._sessions.get(conversation_id)
            if existing is not None and existing.is_active():
                raise StreamStateError(f"Conversation {conversation_id} is already streaming")
            session = StreamSession()
            self._sessions[conversation_id] = session
            return session

    def get(self, conversation_id: str) -> Optional[StreamSession]:
        with self._lock:
            return self._sessions.get(conversation_id)

    def cancel(self, conversation_id: str) -> bool:
        session = self.get(conversation_id)
        if session is None or not session.is_active():
            return False
        session.cancel()
        return True

    def discard(self, conversation_id: str) -> None:
        with self._lock:
            self._sessions.pop(conversation_id, None)
