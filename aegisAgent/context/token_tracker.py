"""
Token estimation and model capability lookup.

Responsibilities:
1. Deterministic token estimation used by all budget math
2. Context window lookup per model (exact match, then prefix match)
3. Extracting real token usage from provider responses
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional

from langchain_core.messages import BaseMessage

logger = logging.getLogger("aegis.context.tokens")

CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class TokenUsage:
    """Token usage of a single provider call."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model_name: str = "unknown"


# Context windows per model; longer keys win prefix matches
MODEL_CONTEXT_WINDOWS: Dict[str, int] = {
    # OpenAI
    "gpt-4": 8_192,
    "gpt-4-32k": 32_768,
    "gpt-4-turbo": 128_000,
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4.1": 1_000_000,
    "gpt-3.5-turbo": 16_385,

    # Anthropic
    "claude-3-opus": 200_000,
    "claude-3-sonnet": 200_000,
    "claude-3-haiku": 200_000,
    "claude-3-5-sonnet": 200_000,
    "claude-3-5-haiku": 200_000,

    # DeepSeek
    "deepseek-chat": 128_000,
    "deepseek-reasoner": 128_000,

    # Moonshot
    "moonshot-v1-8k": 8_000,
    "moonshot-v1-32k": 32_000,
    "moonshot-v1-128k": 128_000,

    # Local
    "llama3": 8_192,
    "qwen2.5": 32_768,
}


class TokenEstimator:
    """Cheap, deterministic token-count approximation.

    One token per four characters, rounded up, so ``estimate("abcdefgh") == 2``.
    The empty string costs nothing.
    """

    def __init__(self, chars_per_token: int = CHARS_PER_TOKEN):
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chars_per_token = chars_per_token

    def estimate(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


_DEFAULT_ESTIMATOR = TokenEstimator()


def estimate_tokens(text: Optional[str]) -> int:
    """Module-level shortcut for the default estimator."""
    return _DEFAULT_ESTIMATOR.estimate(text)


def get_context_window(
    model_id: Optional[str],
    default: int = 8000,
    override: Optional[int] = None,
) -> int:
    """
    Resolve the context window size for a model.

    An explicit override always wins. Otherwise exact match, then the longest
    prefix match (e.g. "gpt-4o-2024-08-06" matches "gpt-4o"), then ``default``.
    """
    if override:
        return override
    if not model_id:
        return default

    if model_id in MODEL_CONTEXT_WINDOWS:
        return MODEL_CONTEXT_WINDOWS[model_id]

    for key in sorted(MODEL_CONTEXT_WINDOWS, key=len, reverse=True):
        if model_id.startswith(key):
            return MODEL_CONTEXT_WINDOWS[key]

    logger.debug(f"Unknown model {model_id}, using default context window {default}")
    return default


def extract_token_usage(message: BaseMessage) -> Optional[TokenUsage]:
    """
    Extract token usage from a provider response.

    Prefers langchain's normalized ``usage_metadata`` and falls back to the raw
    ``response_metadata`` (``token_usage`` or ``usage``). Returns None when the
    provider reported nothing.
    """
    response_metadata = getattr(message, "response_metadata", None) or {}
    model_name = response_metadata.get("model_name") or response_metadata.get("model") or "unknown"

    usage_metadata = getattr(message, "usage_metadata", None)
    if usage_metadata:
        return TokenUsage(
            prompt_tokens=usage_metadata.get("input_tokens", 0),
            completion_tokens=usage_metadata.get("output_tokens", 0),
            total_tokens=usage_metadata.get("total_tokens", 0),
            model_name=model_name,
        )

    usage = response_metadata.get("token_usage") or response_metadata.get("usage")
    if not usage:
        return None

    prompt = usage.get("prompt_tokens", usage.get("input_tokens", 0))
    completion = usage.get("completion_tokens", usage.get("output_tokens", 0))
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=usage.get("total_tokens", prompt + completion),
        model_name=model_name,
    )
