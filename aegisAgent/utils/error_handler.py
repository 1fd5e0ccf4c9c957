"""Unified error types and helpers for the agent engine and its tools."""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Callable, Optional

LOGGER = logging.getLogger("aegis.errors")


class AegisAgentError(Exception):
    """Base exception for AegisAgent errors."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ProviderFailureError(AegisAgentError):
    """A provider call failed and no failover candidate succeeded."""

    def __init__(self, message: str, user_message: Optional[str] = None, provider: Optional[str] = None):
        super().__init__(message, user_message)
        self.provider = provider


class ProviderTimeoutError(ProviderFailureError):
    """Provider call exceeded its timeout."""
    pass


class RateLimitedError(AegisAgentError):
    """Every candidate provider is over its request window."""

    def __init__(self, message: str, user_message: Optional[str] = None, provider: Optional[str] = None):
        super().__init__(message, user_message or "Too many requests, please retry in a minute.")
        self.provider = provider


class ToolExecutionError(AegisAgentError):
    """Error during tool execution."""
    pass


class MaxStepsExceededError(AegisAgentError):
    """The generate/tool loop hit its iteration cap."""

    def __init__(self, max_steps: int):
        super().__init__(
            f"Maximum tool execution steps reached ({max_steps}).",
            "Maximum tool execution steps reached.",
        )
        self.max_steps = max_steps


class StreamStateError(AegisAgentError):
    """Operation not valid in the stream session's current state."""
    pass


def safe_tool_call(tool_name: str):
    """Decorator for safe tool execution with error handling.

    Args:
        tool_name: Name of the tool for logging

    Example:
        @tool
        @safe_tool_call("delegate_task")
        def delegate_task(...) -> str:
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> str:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                LOGGER.exception(f"Tool {tool_name} failed", exc_info=e)
                return json.dumps({
                    "ok": False,
                    "error": f"Tool execution failed: {e}",
                }, ensure_ascii=False)
        return wrapper
    return decorator


def handle_model_error(error: Exception) -> str:
    """Convert model invocation errors to user-friendly messages.

    Args:
        error: Exception raised during model invocation

    Returns:
        User-friendly error message
    """
    if isinstance(error, RateLimitedError):
        return error.user_message
    if isinstance(error, ProviderTimeoutError):
        return "The AI provider timed out, please retry."
    if isinstance(error, MaxStepsExceededError):
        return error.user_message

    error_str = str(error).lower()

    if "rate_limit" in error_str or "429" in error_str:
        return "Too many requests, please retry in a minute."

    if "timeout" in error_str or "timed out" in error_str:
        return "The AI provider timed out, please retry."

    if "context_length" in error_str or "maximum context" in error_str:
        return "The conversation is too long for this model, please start a new one."

    if "invalid_api_key" in error_str or "authentication" in error_str:
        return "The provider API key is invalid, please check your configuration."

    if "quota" in error_str or "insufficient" in error_str:
        return "The AI provider quota is exhausted."

    return f"The AI service is temporarily unavailable: {error}"
