"""Utilities for AegisAgent."""

from .error_handler import (
    AegisAgentError,
    MaxStepsExceededError,
    ProviderFailureError,
    ProviderTimeoutError,
    RateLimitedError,
    StreamStateError,
    ToolExecutionError,
    handle_model_error,
    safe_tool_call,
)
from .logging_utils import (
    get_logger,
    log_agent_response,
    log_error,
    log_tool_call,
    log_tool_result,
    log_user_message,
    setup_logging,
)

__all__ = [
    "AegisAgentError",
    "MaxStepsExceededError",
    "ProviderFailureError",
    "ProviderTimeoutError",
    "RateLimitedError",
    "StreamStateError",
    "ToolExecutionError",
    "handle_model_error",
    "safe_tool_call",
    "get_logger",
    "log_agent_response",
    "log_error",
    "log_tool_call",
    "log_tool_result",
    "log_user_message",
    "setup_logging",
]
