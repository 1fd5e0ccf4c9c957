"""Tool registry, permission-checked invocation and built-in tools."""

from .invoker import ApprovalRequest, ApprovalResponse, ToolInvoker
from .registry import ToolMeta, ToolRegistry
from .result import ToolCall, ToolResult

__all__ = [
    "ApprovalRequest",
    "ApprovalResponse",
    "ToolInvoker",
    "ToolMeta",
    "ToolRegistry",
    "ToolCall",
    "ToolResult",
]
