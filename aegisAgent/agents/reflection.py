"""Critique persona: approves a response or asks for a revision."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from langchain_core.messages import HumanMessage

from aegisAgent.context.messages import stringify_content

from .prompts import APPROVED_MARKER, NEEDS_REVISION_MARKER, REFLECTION_SYSTEM_PROMPT, build_reflection_prompt

if TYPE_CHECKING:
    from aegisAgent.models.providers import ChatProvider

LOGGER = logging.getLogger("aegis.agents.reflection")


@dataclass(frozen=True)
class ReflectionVerdict:
    approved: bool
    feedback: str = ""

    @classmethod
    def approve(cls, feedback: str = "") -> "ReflectionVerdict":
        return cls(approved=True, feedback=feedback)

    @classmethod
    def needs_revision(cls, feedback: str) -> "ReflectionVerdict":
        return cls(approved=False, feedback=feedback)


def parse_verdict(text: str) -> ReflectionVerdict:
    """Read the leading marker; anything but NEEDS_REVISION counts as approval."""
    cleaned = (text or "").strip().strip('"').strip()
    upper = cleaned.upper()
    if upper.startswith(NEEDS_REVISION_MARKER):
        return ReflectionVerdict.needs_revision(cleaned[len(NEEDS_REVISION_MARKER):].strip())
    if upper.startswith(APPROVED_MARKER):
        return ReflectionVerdict.approve(cleaned[len(APPROVED_MARKER):].strip())
    return ReflectionVerdict.approve(cleaned)


class ReflectionGate:
    """Invokes the critique persona; fails open on provider errors."""

    def __init__(self, provider: "ChatProvider", model: Optional[str] = None):
        self.provider = provider
        self.model = model

    async def critique(self, response: str, original_prompt: str) -> ReflectionVerdict:
        try:
            reply = await self.provider.generate(
                REFLECTION_SYSTEM_PROMPT,
                [HumanMessage(content=build_reflection_prompt(original_prompt, response))],
                model=self.model,
            )
        except Exception as e:
            LOGGER.warning(f"Reflection failed, approving response: {e}")
            return ReflectionVerdict.approve()

        verdict = parse_verdict(stringify_content(reply.content))
        LOGGER.info(f"Reflection verdict: {'APPROVED' if verdict.approved else 'NEEDS_REVISION'}")
        return verdict
