"""Provider selection, failover and rate limiting."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Deque,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.tools import BaseTool

from aegisAgent.utils.error_handler import (
    ProviderFailureError,
    RateLimitedError,
    handle_model_error,
)

from .providers import ChatProvider

LOGGER = logging.getLogger("aegis.models.router")

T = TypeVar("T")


class RateLimiter:
    """Sliding-window request counter per provider.

    ``try_acquire`` checks and increments under one lock, so concurrent turns
    never overshoot the window.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        max_requests: int = 120,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, provider: str, now: float) -> Deque[float]:
        hits = self._hits.setdefault(provider, deque())
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        return hits

    def count(self, provider: str) -> int:
        with self._lock:
            return len(self._prune(provider, self._clock()))

    def is_limited(self, provider: str) -> bool:
        return self.count(provider) >= self.max_requests

    def try_acquire(self, provider: str) -> bool:
        with self._lock:
            now = self._clock()
            hits = self._prune(provider, now)
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def reset(self, provider: Optional[str] = None) -> None:
        with self._lock:
            if provider is None:
                self._hits.clear()
            else:
                self._hits.pop(provider, None)


class ProviderRouter:
    """Routes provider calls to ``[primary, *failover_chain]``.

    Rate-limited candidates are skipped. When every candidate is limited the
    call raises :class:`RateLimitedError` without touching any provider. When
    all attempted candidates fail, the last failure is raised as
    :class:`ProviderFailureError`. The router itself satisfies the provider
    contract, so personas can use it directly.
    """

    def __init__(
        self,
        providers: Mapping[str, ChatProvider],
        primary: Optional[str] = None,
        failover_chain: Sequence[str] = (),
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if not providers:
            raise ValueError("ProviderRouter needs at least one provider")
        self.providers: Dict[str, ChatProvider] = dict(providers)
        self.primary = primary or next(iter(self.providers))
        if self.primary not in self.providers:
            raise ValueError(f"Unknown primary provider: {self.primary}")
        self.failover_chain = list(failover_chain)
        self.rate_limiter = rate_limiter or RateLimiter()

    @property
    def name(self) -> str:
        return self.primary

    @property
    def model(self) -> str:
        return self.providers[self.primary].model

    @property
    def context_window(self) -> int:
        return self.providers[self.primary].context_window

    def resolve(self, provider: Optional[str] = None) -> ChatProvider:
        name = provider or self.primary
        if name not in self.providers:
            raise ProviderFailureError(f"Unknown provider: {name}", provider=name)
        return self.providers[name]

    def candidates(self, primary: Optional[str] = None) -> List[str]:
        first = primary or self.primary
        ordered: List[str] = []
        for name in [first, *self.failover_chain]:
            if name in ordered:
                continue
            if name not in self.providers:
                LOGGER.warning(f"Failover chain references unknown provider {name}, skipping")
                continue
            ordered.append(name)
        return ordered

    def _exhausted(self, attempted: int, last_error: Optional[BaseException], names: List[str]) -> Exception:
        if attempted == 0:
            return RateLimitedError(
                f"All providers are rate limited: {', '.join(names)}",
                provider=names[0] if names else None,
            )
        if isinstance(last_error, ProviderFailureError):
            return last_error
        return ProviderFailureError(
            f"All providers failed; last error: {last_error}",
            handle_model_error(last_error) if last_error else None,
            provider=names[-1] if names else None,
        )

    async def failover(
        self,
        operation: Callable[[ChatProvider], Awaitable[T]],
        primary: Optional[str] = None,
    ) -> T:
        """Run ``operation`` against each candidate until one succeeds."""
        names = self.candidates(primary)
        attempted = 0
        last_error: Optional[BaseException] = None

        for name in names:
            if not self.rate_limiter.try_acquire(name):
                LOGGER.warning(f"Provider {name} is rate limited, skipping")
                continue
            attempted += 1
            try:
                return await operation(self.providers[name])
            except Exception as e:
                LOGGER.warning(f"Provider {name} failed: {type(e).__name__}: {e}")
                last_error = e

        raise self._exhausted(attempted, last_error, names) from last_error

    async def generate(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> AIMessage:
        first = provider or self.primary

        def call(candidate: ChatProvider) -> Awaitable[AIMessage]:
            # A model override only applies to the provider it was chosen for
            override = model if candidate.name == first else None
            return candidate.generate(system_prompt, messages, tools, override)

        return await self.failover(call, primary=first)

    async def stream(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> AsyncIterator[AIMessageChunk]:
        """Stream from the first healthy candidate.

        Failover happens only before the first chunk; once output has been
        emitted a failure propagates.
        """
        first = provider or self.primary
        names = self.candidates(first)
        attempted = 0
        last_error: Optional[BaseException] = None

        for name in names:
            if not self.rate_limiter.try_acquire(name):
                LOGGER.warning(f"Provider {name} is rate limited, skipping")
                continue
            attempted += 1
            candidate = self.providers[name]
            override = model if name == first else None
            started = False
            try:
                async for chunk in candidate.stream(system_prompt, messages, tools, override):
                    started = True
                    yield chunk
                return
            except Exception as e:
                if started:
                    if isinstance(e, ProviderFailureError):
                        raise
                    raise ProviderFailureError(
                        f"Provider {name} failed mid-stream: {e}",
                        handle_model_error(e),
                        provider=name,
                    ) from e
                LOGGER.warning(f"Provider {name} failed before streaming: {type(e).__name__}: {e}")
                last_error = e

        raise self._exhausted(attempted, last_error, names) from last_error
