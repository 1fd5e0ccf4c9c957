"""Chat provider abstraction over langchain-core chat models.

A provider turns ``(system_prompt, messages, tools)`` into an ``AIMessage``
(``generate``) or a sequence of ``AIMessageChunk`` deltas (``stream``). The
engine only talks to providers through this interface; failover across
providers lives in :mod:`aegisAgent.models.router`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, SystemMessage
from langchain_core.tools import BaseTool
from langchain_openai import ChatOpenAI

from aegisAgent.config.settings import ContextSettings, ModelRoutingSettings
from aegisAgent.context.messages import clean_message_history
from aegisAgent.context.token_tracker import get_context_window
from aegisAgent.utils.error_handler import ProviderTimeoutError

LOGGER = logging.getLogger("aegis.models.providers")

_STREAM_PIECE = re.compile(r"\S+\s*|\s+")


@runtime_checkable
class ChatProvider(Protocol):
    """Provider call contract consumed by the engine."""

    name: str
    model: str
    context_window: int

    async def generate(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
        model: Optional[str] = None,
    ) -> AIMessage:
        ...

    def stream(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
        model: Optional[str] = None,
    ) -> AsyncIterator[AIMessageChunk]:
        ...


def split_for_streaming(text: str) -> List[str]:
    """Split text on whitespace boundaries; joining the pieces gives ``text`` back."""
    return _STREAM_PIECE.findall(text or "")


async def simulate_stream(message: AIMessage) -> AsyncIterator[AIMessageChunk]:
    """Replay a finished message as word-sized chunks.

    Tool calls and usage are attached to the last chunk so that summing the
    chunks rebuilds the original message.
    """
    pieces = split_for_streaming(str(message.content or ""))
    tool_call_chunks = [
        {
            "name": call["name"],
            "args": json.dumps(call.get("args") or {}),
            "id": call.get("id"),
            "index": index,
        }
        for index, call in enumerate(message.tool_calls or [])
    ]
    if not pieces:
        pieces = [""]
    for position, piece in enumerate(pieces):
        last = position == len(pieces) - 1
        yield AIMessageChunk(
            content=piece,
            tool_call_chunks=tool_call_chunks if last else [],
            usage_metadata=message.usage_metadata if last else None,
            response_metadata=message.response_metadata if last else {},
        )
        await asyncio.sleep(0)


class LangChainChatProvider:
    """Adapts any langchain-core chat model to the provider contract.

    Tools are bound only when the call passes some; a model override is
    resolved through ``model_factory`` and cached.
    """

    def __init__(
        self,
        name: str,
        chat_model: BaseChatModel,
        model: Optional[str] = None,
        context_window: int = 8000,
        timeout: Optional[float] = None,
        model_factory: Optional[Callable[[str], BaseChatModel]] = None,
        native_streaming: bool = True,
    ):
        self.name = name
        self.model = model or getattr(chat_model, "model_name", None) or getattr(chat_model, "model", None) or name
        self.context_window = context_window
        self.timeout = timeout
        self.native_streaming = native_streaming
        self._model_factory = model_factory
        self._models: Dict[str, BaseChatModel] = {self.model: chat_model}

    def __repr__(self) -> str:
        return f"LangChainChatProvider(name={self.name!r}, model={self.model!r})"

    def _chat_model(self, model: Optional[str]) -> BaseChatModel:
        if not model or model == self.model:
            return self._models[self.model]
        if model not in self._models:
            if self._model_factory is None:
                LOGGER.debug(f"Provider {self.name} has no model factory, ignoring override {model}")
                return self._models[self.model]
            self._models[model] = self._model_factory(model)
        return self._models[model]

    def _runnable(self, tools: Sequence[BaseTool], model: Optional[str]):
        chat_model = self._chat_model(model)
        if tools:
            return chat_model.bind_tools(list(tools))
        return chat_model

    @staticmethod
    def _prepare(system_prompt: str, messages: Sequence[BaseMessage]) -> List[BaseMessage]:
        prepared: List[BaseMessage] = []
        if system_prompt:
            prepared.append(SystemMessage(content=system_prompt))
        prepared.extend(clean_message_history(list(messages)))
        return prepared

    async def generate(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
        model: Optional[str] = None,
    ) -> AIMessage:
        runnable = self._runnable(tools, model)
        prepared = self._prepare(system_prompt, messages)
        try:
            if self.timeout:
                response = await asyncio.wait_for(runnable.ainvoke(prepared), timeout=self.timeout)
            else:
                response = await runnable.ainvoke(prepared)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"Provider {self.name} timed out after {self.timeout}s",
                provider=self.name,
            ) from e
        if not isinstance(response, AIMessage):
            response = AIMessage(content=getattr(response, "content", str(response)))
        return response

    async def stream(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] = (),
        model: Optional[str] = None,
    ) -> AsyncIterator[AIMessageChunk]:
        if not self.native_streaming:
            message = await self.generate(system_prompt, messages, tools, model)
            async for chunk in simulate_stream(message):
                yield chunk
            return

        runnable = self._runnable(tools, model)
        async for chunk in runnable.astream(self._prepare(system_prompt, messages)):
            yield chunk


def _openai_chat(model: str, settings: ModelRoutingSettings, base_url: Optional[str]) -> ChatOpenAI:
    if not settings.api_key:
        raise RuntimeError(f"Missing API key for model {model}; set AEGIS_API_KEY or OPENAI_API_KEY in .env")
    kwargs: Dict[str, object] = {
        "model": model,
        "api_key": settings.api_key,
        "temperature": settings.temperature,
        "timeout": settings.request_timeout,
        "max_retries": 0,
    }
    if base_url:
        kwargs["base_url"] = base_url
    return ChatOpenAI(**kwargs)


def parse_provider_spec(spec: str) -> tuple:
    """Parse ``name=model@base_url`` (``@base_url`` optional)."""
    if "=" not in spec:
        raise ValueError(f"Invalid provider spec {spec!r}, expected name=model[@base_url]")
    name, target = spec.split("=", 1)
    model, _, base_url = target.partition("@")
    return name.strip(), model.strip(), (base_url.strip() or None)


def build_providers(
    settings: ModelRoutingSettings,
    context_settings: Optional[ContextSettings] = None,
) -> Dict[str, LangChainChatProvider]:
    """Create ChatOpenAI-backed providers for the primary and extra entries.

    Provider calls are not retried locally (``max_retries=0``); retries happen
    by failing over in :class:`~aegisAgent.models.router.ProviderRouter`.
    """
    default_window = context_settings.default_context_window if context_settings else 8000
    entries = [(settings.provider, settings.model, settings.base_url)]
    entries.extend(parse_provider_spec(spec) for spec in settings.extra_provider_specs())

    providers: Dict[str, LangChainChatProvider] = {}
    for name, model, base_url in entries:
        providers[name] = LangChainChatProvider(
            name=name,
            chat_model=_openai_chat(model, settings, base_url),
            model=model,
            context_window=get_context_window(
                model,
                default=default_window,
                override=settings.context_window if name == settings.provider else None,
            ),
            timeout=settings.request_timeout,
            model_factory=lambda other, url=base_url: _openai_chat(other, settings, url),
        )
        LOGGER.info(f"Provider registered: {name} ({model})")
    return providers
