"""
Conversation summarizer.

Folds the turns dropped by truncation into a short plain-text summary that is
sent back to the model as "Conversation summary: ...". Summarization is
optional: any provider failure leaves the conversation without a new summary.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence

from langchain_core.messages import HumanMessage

from .messages import Turn, stringify_content

if TYPE_CHECKING:
    from aegisAgent.models.providers import ChatProvider

logger = logging.getLogger("aegis.context.summarizer")

TRANSCRIPT_CHARS_PER_TURN = 400
DEFAULT_SUMMARIZE_AFTER = 10

SUMMARY_SYSTEM_PROMPT = (
    "You compress conversation history for an AI assistant. "
    "Keep names, numbers, file paths and decisions exactly as written."
)

SUMMARY_INSTRUCTIONS = """Summarize the dropped conversation context for future turns.
Output concise plain text with these sections:
Key decisions:
Facts learned:
Open loops:
Keep it under 180 words and preserve concrete details."""


class ConversationSummarizer:
    """Summarize dropped history through a chat provider."""

    def __init__(
        self,
        provider: "ChatProvider",
        summarize_after: int = DEFAULT_SUMMARIZE_AFTER,
        model: Optional[str] = None,
    ):
        self.provider = provider
        self.summarize_after = summarize_after
        self.model = model

    def should_summarize(self, dropped: Sequence[Turn]) -> bool:
        return len(dropped) > self.summarize_after

    def build_transcript(self, dropped: Sequence[Turn]) -> str:
        lines = []
        for turn in dropped:
            label = f"tool ({turn.tool_name})" if turn.role == "tool" and turn.tool_name else turn.role
            lines.append(f"{label}: {turn.content[:TRANSCRIPT_CHARS_PER_TURN]}")
        return "\n".join(lines)

    def build_prompt(self, dropped: Sequence[Turn], previous_summary: Optional[str] = None) -> str:
        parts = [SUMMARY_INSTRUCTIONS]
        if previous_summary:
            parts.append(f"Previous summary:\n{previous_summary}")
        parts.append(f"Conversation chunk:\n{self.build_transcript(dropped)}")
        return "\n\n".join(parts)

    async def summarize(
        self,
        dropped: Sequence[Turn],
        previous_summary: Optional[str] = None,
    ) -> Optional[str]:
        """Return a summary of ``dropped``, or None when there is nothing usable."""
        if not dropped:
            return previous_summary

        prompt = self.build_prompt(dropped, previous_summary)
        try:
            response = await self.provider.generate(
                SUMMARY_SYSTEM_PROMPT,
                [HumanMessage(content=prompt)],
                model=self.model,
            )
        except Exception as e:
            logger.warning(f"Conversation summary failed, continuing without it: {e}")
            return None

        text = stringify_content(response.content).strip()
        if not text:
            logger.warning("Conversation summary came back empty")
            return None

        logger.info(f"Summarized {len(dropped)} dropped turns into {len(text)} chars")
        return text
