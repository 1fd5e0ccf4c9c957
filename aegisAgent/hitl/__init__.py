"""Tool permission policy and audit trail."""

from .audit import (
    TOOL_ALLOWED,
    TOOL_DENIED,
    TOOL_ERROR,
    TOOL_EXECUTED,
    TOOL_REQUEST,
    AuditEntry,
    AuditLogger,
)
from .permissions import PermissionDecision, PermissionLevel, PermissionManager, PermissionOutcome

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "TOOL_ALLOWED",
    "TOOL_DENIED",
    "TOOL_ERROR",
    "TOOL_EXECUTED",
    "TOOL_REQUEST",
    "PermissionDecision",
    "PermissionLevel",
    "PermissionManager",
    "PermissionOutcome",
]
