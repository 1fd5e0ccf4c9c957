"""Cancellable streaming sessions."""

from .session import StreamSession, StreamSessionRegistry, StreamState

__all__ = [
    "StreamSession",
    "StreamSessionRegistry",
    "StreamState",
]
