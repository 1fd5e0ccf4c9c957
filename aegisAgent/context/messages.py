"""Conversation turns and conversion to langchain messages."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from .token_tracker import estimate_tokens

ROLES = ("user", "assistant", "tool", "system")


@dataclass
class Turn:
    """One entry of a conversation history.

    ``token_count`` is filled from the estimator when not given. Streamed
    assistant turns carry ``is_complete`` / ``cancelled``.
    """

    role: str
    content: str
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    token_count: int = 0
    is_complete: bool = True
    cancelled: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown turn role: {self.role!r}")
        if self.content is None:
            self.content = ""
        if not self.token_count:
            self.token_count = estimate_tokens(self.content)

    @classmethod
    def user(cls, content: str, **kwargs) -> "Turn":
        return cls(role="user", content=content, **kwargs)

    @classmethod
    def assistant(cls, content: str, **kwargs) -> "Turn":
        return cls(role="assistant", content=content, **kwargs)

    @classmethod
    def system(cls, content: str, **kwargs) -> "Turn":
        return cls(role="system", content=content, **kwargs)

    @classmethod
    def tool(cls, content: str, tool_name: str, tool_call_id: Optional[str] = None, **kwargs) -> "Turn":
        return cls(role="tool", content=content, tool_name=tool_name, tool_call_id=tool_call_id, **kwargs)

    def with_content(self, content: str, **metadata: Any) -> "Turn":
        """Copy of this turn with new content (token count recomputed)."""
        merged = {**self.metadata, **metadata}
        return dataclasses.replace(self, content=content, token_count=0, metadata=merged)


def stringify_content(content: Any) -> str:
    """Convert langchain message content to plain text.

    Handles list content (multimodal messages), dict parts with a "text" field
    and plain strings.
    """
    if content is None:
        return ""
    if isinstance(content, list):
        pieces: List[str] = []
        for item in content:
            if isinstance(item, dict):
                if "text" in item:
                    pieces.append(str(item["text"]))
            else:
                pieces.append(str(item))
        return "".join(pieces)
    return str(content)


def normalize_tool_calls(tool_calls: Sequence[Any]) -> List[Dict[str, Any]]:
    normalized: List[Dict[str, Any]] = []
    for index, call in enumerate(tool_calls or []):
        if isinstance(call, dict):
            name = call.get("name")
            args = call.get("args") or {}
            call_id = call.get("id")
        else:
            name = getattr(call, "name", None)
            args = getattr(call, "args", None) or {}
            call_id = getattr(call, "id", None)
        normalized.append({
            "id": call_id or f"call_{index}",
            "name": name,
            "args": args,
        })
    return normalized


def turn_from_ai_message(message: AIMessage, **kwargs) -> Turn:
    return Turn.assistant(
        stringify_content(message.content),
        tool_calls=normalize_tool_calls(getattr(message, "tool_calls", None) or []),
        **kwargs,
    )


def to_langchain_messages(turns: Sequence[Turn]) -> List[BaseMessage]:
    """Convert turns to langchain-core messages, in order."""
    messages: List[BaseMessage] = []
    for index, turn in enumerate(turns):
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        elif turn.role == "system":
            messages.append(SystemMessage(content=turn.content))
        elif turn.role == "assistant":
            if turn.tool_calls:
                messages.append(AIMessage(
                    content=turn.content,
                    tool_calls=[
                        {"name": call["name"], "args": call.get("args") or {}, "id": call["id"], "type": "tool_call"}
                        for call in turn.tool_calls
                    ],
                ))
            else:
                messages.append(AIMessage(content=turn.content))
        else:
            messages.append(ToolMessage(
                content=turn.content,
                tool_call_id=turn.tool_call_id or f"orphan_{index}",
                name=turn.tool_name,
            ))
    return messages


def clean_message_history(messages: List[BaseMessage]) -> List[BaseMessage]:
    """Remove tool-call messages without answers and tool results without calls.

    Providers require every AI message with tool_calls to be followed by the
    matching ToolMessages, and every ToolMessage to answer a preceding call.
    Truncation can break both, so the request is repaired here.

    Args:
        messages: List of conversation messages

    Returns:
        Cleaned list, order preserved
    """
    answered_call_ids: Set[str] = set()
    requested_call_ids: Set[str] = set()
    for msg in messages:
        if isinstance(msg, ToolMessage):
            call_id = getattr(msg, "tool_call_id", None)
            if call_id:
                answered_call_ids.add(call_id)
        elif isinstance(msg, AIMessage):
            for tc in getattr(msg, "tool_calls", None) or []:
                tc_id = tc.get("id") if isinstance(tc, dict) else getattr(tc, "id", None)
                if tc_id:
                    requested_call_ids.add(tc_id)

    cleaned: List[BaseMessage] = []
    dropped_ai_call_ids: Set[str] = set()
    for msg in messages:
        if isinstance(msg, AIMessage):
            tool_calls = getattr(msg, "tool_calls", None) or []
            call_ids = [
                tc.get("id") if isinstance(tc, dict) else getattr(tc, "id", None)
                for tc in tool_calls
            ]
            if any(tc_id and tc_id not in answered_call_ids for tc_id in call_ids):
                # Skip this AI message and its partial answers
                dropped_ai_call_ids.update(tc_id for tc_id in call_ids if tc_id)
                continue
        elif isinstance(msg, ToolMessage):
            call_id = getattr(msg, "tool_call_id", None)
            if call_id not in requested_call_ids or call_id in dropped_ai_call_ids:
                continue

        cleaned.append(msg)

    return cleaned
