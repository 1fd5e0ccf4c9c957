"""
Context window manager - single entry point for prompt budgeting.

Responsibilities:
1. Split the model context window into section budgets
2. Truncate history newest-first to the message budget
3. Compress bulky tool results
4. Fold memories and the conversation summary into system turns
5. Summarize dropped history when enough of it has fallen out
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

from aegisAgent.config.settings import ContextSettings

from .compressor import CompressionResult, ToolResultCompressor
from .messages import Turn
from .summarizer import ConversationSummarizer
from .token_tracker import TokenEstimator
from .truncator import MessageTruncator

logger = logging.getLogger("aegis.context.manager")

MEMORIES_MARKER = "Relevant memories:"
SUMMARY_MARKER = "Conversation summary:"
SECTION_TRIM_STEP = 25

BUDGET_SECTIONS = ("system_prompt", "memories", "summary", "messages", "reserve")


@dataclass(frozen=True)
class Budget:
    """Token quotas per prompt section; the five fields sum to the window."""
    system_prompt: int
    memories: int
    summary: int
    messages: int
    reserve: int

    @property
    def total(self) -> int:
        return self.system_prompt + self.memories + self.summary + self.messages + self.reserve

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ContextWindowReport:
    """Result of one context build."""
    messages: List[Turn]
    budget: Budget
    dropped: List[Turn] = field(default_factory=list)
    tokens_used: int = 0
    compression: Optional[CompressionResult] = None
    summary: Optional[str] = None
    summary_covers: int = 0
    new_summary: bool = False


class ContextWindowManager:
    """
    Builds the message list sent to the provider for one generation.

    The returned messages plus the system prompt never exceed the context
    window under ``total_tokens_used``; the reserve quota stays free for the
    model's answer.
    """

    def __init__(
        self,
        settings: ContextSettings,
        estimator: Optional[TokenEstimator] = None,
        summarizer: Optional[ConversationSummarizer] = None,
    ):
        self.settings = settings
        self.estimator = estimator or TokenEstimator()
        self.truncator = MessageTruncator(self.estimator)
        self.compressor = ToolResultCompressor(settings.compress_threshold_chars)
        self.summarizer = summarizer

    # ----- primitives -----

    def estimate(self, text: Optional[str]) -> int:
        return self.estimator.estimate(text)

    def total_tokens_used(self, system_prompt: str, messages: Sequence[Turn]) -> int:
        return self.estimate(system_prompt) + sum(self.estimate(m.content) for m in messages)

    def allocate_budget(self, total_tokens: int) -> Budget:
        """Split ``total_tokens`` by the configured ratios; rounding goes to reserve."""
        if total_tokens < 0:
            raise ValueError(f"total_tokens must be >= 0, got {total_tokens}")

        ratios = self.settings.ratios()
        quotas = {
            name: math.floor(total_tokens * ratios[name] + 1e-9)
            for name in BUDGET_SECTIONS
            if name != "reserve"
        }
        quotas["reserve"] = total_tokens - sum(quotas.values())
        return Budget(**quotas)

    def truncate_messages(
        self,
        system_prompt: str,
        messages: Sequence[Turn],
        budget_tokens: int,
    ) -> List[Turn]:
        return self.truncator.truncate(system_prompt, messages, budget_tokens)

    def compress_tool_results(self, messages: Sequence[Turn]) -> List[Turn]:
        return self.compressor.compress(messages).messages

    # ----- window assembly -----

    def build_context_window(
        self,
        system_prompt: str,
        messages: Sequence[Turn],
        total_tokens: int,
        summary: Optional[str] = None,
        memories: Optional[Sequence[str]] = None,
        compress: bool = False,
    ) -> List[Turn]:
        return self.build(
            system_prompt,
            messages,
            total_tokens,
            summary=summary,
            memories=memories,
            compress=compress,
        ).messages

    def build(
        self,
        system_prompt: str,
        messages: Sequence[Turn],
        total_tokens: int,
        summary: Optional[str] = None,
        memories: Optional[Sequence[str]] = None,
        compress: bool = False,
        summary_covers: int = 0,
    ) -> ContextWindowReport:
        """
        Assemble memories, summary and the newest history that fits.

        Args:
            system_prompt: Persona system prompt (sent separately, but charged here)
            messages: Full conversation history, oldest first
            total_tokens: Model context window
            summary: Existing conversation summary
            memories: Memory snippets for this conversation
            compress: Compress tool results before truncating
            summary_covers: Number of oldest turns already folded into ``summary``

        Returns:
            ContextWindowReport with the final message list and what was dropped
        """
        budget = self.allocate_budget(total_tokens)
        limit = total_tokens - budget.reserve

        compression = None
        history = list(messages)
        if compress:
            compression = self.compressor.compress(history)
            history = compression.messages

        system_cost = self.estimate(system_prompt)
        if system_cost > limit:
            logger.warning(
                f"System prompt ({system_cost} tokens) exceeds the usable window ({limit}); "
                f"sending no history"
            )
            return ContextWindowReport(
                messages=[],
                budget=budget,
                dropped=history,
                tokens_used=system_cost,
                compression=compression,
                summary=summary,
                summary_covers=summary_covers,
            )

        prefix: List[Turn] = []
        if memories:
            memory_text = MEMORIES_MARKER + "\n" + "\n".join(f"- {m}" for m in memories if m)
            memory_turn = self._fit_section(memory_text, budget.memories, MEMORIES_MARKER)
            if memory_turn:
                prefix.append(memory_turn)
        if summary:
            summary_turn = self._fit_section(f"{SUMMARY_MARKER} {summary}", budget.summary, SUMMARY_MARKER)
            if summary_turn:
                prefix.append(summary_turn)

        kept = self.truncate_messages(system_prompt, history, budget.system_prompt + budget.messages)

        # Guard: section quotas already fit, this only fires on a custom estimator
        while self.total_tokens_used(system_prompt, prefix + kept) > limit:
            if len(kept) > 1:
                kept.pop(0)
            elif prefix:
                prefix.pop()
            elif kept:
                kept.pop(0)
            else:
                break

        dropped = history[: len(history) - len(kept)]
        final = prefix + kept
        used = self.total_tokens_used(system_prompt, final)

        if dropped:
            logger.info(
                f"Context window: kept {len(kept)}/{len(history)} turns, "
                f"{used}/{total_tokens} tokens (reserve {budget.reserve})"
            )

        return ContextWindowReport(
            messages=final,
            budget=budget,
            dropped=dropped,
            tokens_used=used,
            compression=compression,
            summary=summary,
            summary_covers=summary_covers,
        )

    async def build_with_summary(
        self,
        system_prompt: str,
        messages: Sequence[Turn],
        total_tokens: int,
        summary: Optional[str] = None,
        memories: Optional[Sequence[str]] = None,
        compress: bool = False,
        summary_covers: int = 0,
    ) -> ContextWindowReport:
        """
        Build the window and refresh the summary when enough new turns were dropped.

        Only the turns dropped since ``summary_covers`` are sent to the
        summarizer, together with the previous summary.
        """
        report = self.build(
            system_prompt,
            messages,
            total_tokens,
            summary=summary,
            memories=memories,
            compress=compress,
            summary_covers=summary_covers,
        )
        if self.summarizer is None or not self.settings.summary_enabled:
            return report

        covered = min(summary_covers, len(report.dropped)) if summary else 0
        newly_dropped = report.dropped[covered:]
        if not self.summarizer.should_summarize(newly_dropped):
            return report

        new_summary = await self.summarizer.summarize(newly_dropped, previous_summary=summary)
        if not new_summary or new_summary == summary:
            return report

        rebuilt = self.build(
            system_prompt,
            messages,
            total_tokens,
            summary=new_summary,
            memories=memories,
            compress=compress,
            summary_covers=len(report.dropped),
        )
        rebuilt.new_summary = True
        return rebuilt

    def _fit_section(self, text: str, quota: int, marker: str) -> Optional[Turn]:
        """Trim ``text`` from the end in fixed steps until it fits ``quota``."""
        if quota <= 0:
            return None
        max_chars = quota * self.estimator.chars_per_token
        if len(text) > max_chars:
            text = text[:max_chars]
        while text and self.estimate(text) > quota:
            text = text[:-SECTION_TRIM_STEP]
        if len(text.strip()) <= len(marker):
            return None
        return Turn.system(text, metadata={"section": marker.rstrip(":").lower()})
