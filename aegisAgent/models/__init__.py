"""Provider layer exports."""

from .providers import (
    ChatProvider,
    LangChainChatProvider,
    build_providers,
    simulate_stream,
    split_for_streaming,
)
from .router import ProviderRouter, RateLimiter

__all__ = [
    "ChatProvider",
    "LangChainChatProvider",
    "build_providers",
    "simulate_stream",
    "split_for_streaming",
    "ProviderRouter",
    "RateLimiter",
]
