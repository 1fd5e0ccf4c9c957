"""
Context management.

- Deterministic token estimation and per-model context windows
- Budget split of the window into prompt sections
- Newest-first truncation, tool-result compression and summarization
"""

from .token_tracker import (
    MODEL_CONTEXT_WINDOWS,
    TokenEstimator,
    TokenUsage,
    estimate_tokens,
    extract_token_usage,
    get_context_window,
)
from .messages import Turn, clean_message_history, stringify_content, to_langchain_messages, turn_from_ai_message
from .compressor import CompressionResult, ToolResultCompressor, compress_tool_results
from .truncator import MessageTruncator
from .summarizer import ConversationSummarizer
from .manager import Budget, ContextWindowManager, ContextWindowReport

__all__ = [
    "MODEL_CONTEXT_WINDOWS",
    "TokenEstimator",
    "TokenUsage",
    "estimate_tokens",
    "extract_token_usage",
    "get_context_window",
    "Turn",
    "clean_message_history",
    "stringify_content",
    "to_langchain_messages",
    "turn_from_ai_message",
    "CompressionResult",
    "ToolResultCompressor",
    "compress_tool_results",
    "MessageTruncator",
    "ConversationSummarizer",
    "Budget",
    "ContextWindowManager",
    "ContextWindowReport",
]
