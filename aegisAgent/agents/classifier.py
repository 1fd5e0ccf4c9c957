"""Heuristic decision: does a request need multi-step planning?"""

from __future__ import annotations

import logging
import re
from typing import FrozenSet, Iterable, Optional

LOGGER = logging.getLogger("aegis.agents.classifier")

ACTION_KEYWORDS: FrozenSet[str] = frozenset({
    "create", "modify", "delete", "update", "build", "fix", "implement",
    "write", "read", "search", "find", "analyze", "run", "execute",
    "install", "refactor", "migrate", "deploy", "configure", "set up",
    "debug", "test", "remove", "add", "change", "move", "rename",
    "research", "compare", "summarize", "generate",
})

MIN_WORDS = 5
LONG_REQUEST_WORDS = 20
MIN_LIST_ITEMS = 2

_WORD = re.compile(r"[A-Za-z][A-Za-z'-]*")
_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+\S", re.MULTILINE)


class ComplexityClassifier:
    """Deterministic planning heuristic.

    - fewer than 5 words: never planned
    - an action verb (whole word) anywhere: planned
    - an enumerated list of two or more items: planned
    - otherwise planned only when the request is long (20+ words)
    """

    def __init__(self, keywords: Optional[Iterable[str]] = None):
        words = frozenset(k.lower() for k in (keywords or ACTION_KEYWORDS))
        self.keywords = words
        self._keyword_pattern = re.compile(
            r"\b(?:" + "|".join(re.escape(k).replace(r"\ ", r"\s+") for k in sorted(words)) + r")\b",
            re.IGNORECASE,
        )

    @staticmethod
    def word_count(prompt: str) -> int:
        return len(_WORD.findall(prompt))

    def requires_planning(self, prompt: str) -> bool:
        words = self.word_count(prompt)
        if words < MIN_WORDS:
            return False

        match = self._keyword_pattern.search(prompt)
        if match:
            LOGGER.debug(f"Planning required: action keyword '{match.group(0)}'")
            return True

        if len(_LIST_ITEM.findall(prompt)) >= MIN_LIST_ITEMS:
            LOGGER.debug("Planning required: enumerated deliverables")
            return True

        return words >= LONG_REQUEST_WORDS
