"""Streaming front-end: start, observe and stop a streaming turn."""

from __future__ import annotations

import logging
from typing import Optional

from aegisAgent.runtime.orchestrator import ChunkCallback, GenerationOrchestrator, TurnOutcome

from .session import StreamSessionRegistry

LOGGER = logging.getLogger("aegis.streaming.orchestrator")


class StreamingOrchestrator:
    """Runs streaming turns, one session per conversation.

    ``stop`` may be called from another coroutine while ``start`` is awaiting;
    the running turn stops at its next chunk boundary and keeps the partial
    output.
    """

    def __init__(self, orchestrator: GenerationOrchestrator, registry: Optional[StreamSessionRegistry] = None):
        self.orchestrator = orchestrator
        self.sessions = registry or StreamSessionRegistry()

    async def start(
        self,
        prompt: str,
        conversation_id: str,
        on_chunk: Optional[ChunkCallback] = None,
        with_storage: bool = True,
    ) -> TurnOutcome:
        session = self.sessions.open(conversation_id)
        LOGGER.info(f"Streaming turn for conversation {conversation_id} (session {session.id})")
        return await self.orchestrator.run(
            prompt,
            conversation_id,
            with_storage=with_storage,
            stream=session,
            on_chunk=on_chunk,
        )

    def stop(self, conversation_id: str) -> bool:
        """Cancel the active stream of a conversation; False if none is running."""
        stopped = self.sessions.cancel(conversation_id)
        if stopped:
            LOGGER.info(f"Stopped stream for conversation {conversation_id}")
        return stopped

    def buffer(self, conversation_id: str) -> str:
        session = self.sessions.get(conversation_id)
        return session.read() if session else ""

    def is_streaming(self, conversation_id: str) -> bool:
        session = self.sessions.get(conversation_id)
        return bool(session and session.is_active())
