"""
Newest-first message truncator.

Keeps the longest contiguous suffix of the history that fits a token budget.
Greedy on purpose: it stops at the first message that does not fit instead of
searching for older messages that might.
"""

from typing import List, Optional, Sequence
import logging

from .messages import Turn
from .token_tracker import TokenEstimator

logger = logging.getLogger("aegis.context.truncator")


class MessageTruncator:
    """Newest-first suffix selection under a token budget."""

    def __init__(self, estimator: Optional[TokenEstimator] = None):
        self.estimator = estimator or TokenEstimator()

    def cost(self, turn: Turn) -> int:
        return self.estimator.estimate(turn.content)

    def truncate(
        self,
        system_prompt: str,
        messages: Sequence[Turn],
        budget_tokens: int,
    ) -> List[Turn]:
        """
        Keep the newest messages that fit in ``budget_tokens`` minus the system prompt.

        Args:
            system_prompt: System prompt, charged against the budget first
            messages: History, oldest first
            budget_tokens: Budget for system prompt plus kept messages

        Returns:
            Contiguous suffix of ``messages`` in original order
        """
        if not messages:
            return []

        available = budget_tokens - self.estimator.estimate(system_prompt)
        used = 0
        kept = 0
        for turn in reversed(messages):
            cost = self.cost(turn)
            if used + cost > available:
                break
            used += cost
            kept += 1

        if kept < len(messages):
            logger.debug(
                f"Truncated messages: {len(messages)} → {kept} "
                f"({used}/{max(available, 0)} tokens used)"
            )
        return list(messages[len(messages) - kept:]) if kept else []
