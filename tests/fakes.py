"""Scripted test doubles shared by the unit and integration tests."""

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import tool

from aegisAgent.models.providers import simulate_stream

Reply = Union[str, AIMessage, Exception, "StreamFailure"]


class StreamFailure:
    """Streams ``text`` and then raises ``error``."""

    def __init__(self, text: str, error: Exception):
        self.text = text
        self.error = error


class FakeProvider:
    """Chat provider that replays scripted replies.

    Replies are consumed in order; strings become plain AI messages and
    exceptions are raised. When the script runs out ``default`` is returned.
    ``responder(system_prompt, messages)`` overrides the script entirely.
    """

    def __init__(
        self,
        replies: Optional[Sequence[Reply]] = None,
        name: str = "fake",
        model: str = "fake-model",
        context_window: int = 8000,
        default: str = "ok",
        responder: Optional[Callable[[str, Sequence[BaseMessage]], Reply]] = None,
    ):
        self.name = name
        self.model = model
        self.context_window = context_window
        self.default = default
        self.responder = responder
        self._replies: List[Reply] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def _next(self, system_prompt: str, messages: Sequence[BaseMessage]) -> Reply:
        if self.responder is not None:
            reply = self.responder(system_prompt, messages)
        elif self._replies:
            reply = self._replies.pop(0)
        else:
            reply = self.default
        if isinstance(reply, str):
            return AIMessage(content=reply)
        return reply

    def _record(self, kind, system_prompt, messages, tools, model) -> None:
        self.calls.append({
            "kind": kind,
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": [t.name for t in tools],
            "model": model,
        })

    async def generate(self, system_prompt, messages, tools=(), model=None) -> AIMessage:
        self._record("generate", system_prompt, messages, tools, model)
        reply = self._next(system_prompt, messages)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, StreamFailure):
            raise reply.error
        return reply

    async def stream(self, system_prompt, messages, tools=(), model=None):
        self._record("stream", system_prompt, messages, tools, model)
        reply = self._next(system_prompt, messages)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, StreamFailure):
            async for chunk in simulate_stream(AIMessage(content=reply.text)):
                yield chunk
            raise reply.error
        async for chunk in simulate_stream(reply):
            yield chunk


def tool_call_message(name: str, args: Dict[str, Any], call_id: str = "call_1", content: str = "") -> AIMessage:
    return AIMessage(content=content, tool_calls=[{"name": name, "args": args, "id": call_id}])


@tool
def echo(text: str) -> str:
    """Echo the text back."""
    return f"echo: {text}"


@tool
def explode(reason: str) -> str:
    """Always fails."""
    raise RuntimeError(reason)
