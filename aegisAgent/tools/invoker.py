"""Permission-checked tool execution."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from aegisAgent.hitl.audit import (
    TOOL_ALLOWED,
    TOOL_DENIED,
    TOOL_ERROR,
    TOOL_EXECUTED,
    TOOL_REQUEST,
    AuditLogger,
)
from aegisAgent.hitl.permissions import PermissionDecision, PermissionLevel, PermissionManager
from aegisAgent.utils.error_handler import ToolExecutionError
from aegisAgent.utils.logging_utils import log_tool_call, log_tool_result

from .registry import ToolRegistry
from .result import ToolCall, ToolResult

LOGGER = logging.getLogger("aegis.tools.invoker")

DENIED_BY_APPROVAL = "Tool execution denied by approval policy."
DENIED_BY_SECURITY = "Tool execution denied by security policy."


@dataclass(frozen=True)
class ApprovalRequest:
    tool_name: str
    action: str
    params: Dict[str, Any]
    reason: str
    risk_level: str
    conversation_id: Optional[str] = None


@dataclass(frozen=True)
class ApprovalResponse:
    approved: bool
    remember: bool = False
    scope: Optional[str] = None


ApprovalResolver = Callable[[ApprovalRequest], Awaitable[ApprovalResponse]]


class ToolInvoker:
    """Checks permission, executes the tool and reports to the audit log.

    Never raises for tool-level problems: unknown tools, denials and tool
    exceptions all come back as failed :class:`ToolResult` values so the model
    can react to them.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        permissions: PermissionManager,
        audit: Optional[AuditLogger] = None,
        approval_resolver: Optional[ApprovalResolver] = None,
        approval_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.permissions = permissions
        self.audit = audit or AuditLogger()
        self.approval_resolver = approval_resolver
        self.approval_timeout = approval_timeout

    def tools(self):
        return self.registry.list_tools()

    async def invoke(self, call: ToolCall, conversation_id: Optional[str] = None) -> ToolResult:
        log_tool_call(LOGGER, call.name, call.args, conversation_id)
        self.audit.record(TOOL_REQUEST, call.name, conversation_id, args=call.args)

        tool = self.registry.get_tool_optional(call.name)
        if tool is None:
            error = f"Unknown tool: {call.name}"
            self.audit.record(TOOL_ERROR, call.name, conversation_id, error=error)
            log_tool_result(LOGGER, call.name, error, success=False)
            return ToolResult.failure(error)

        action = self.registry.required_permission(call.name)
        decision = self.permissions.check(call.name, action, call.args)

        if decision.denied:
            return self._deny(call, conversation_id, DENIED_BY_SECURITY, decision)

        if decision.needs_approval:
            approved = await self._resolve_approval(call, action, decision, conversation_id)
            if not approved:
                return self._deny(call, conversation_id, DENIED_BY_APPROVAL, decision)

        self.audit.record(TOOL_ALLOWED, call.name, conversation_id, action=action)

        try:
            output = await tool.ainvoke(call.args)
        except ToolExecutionError as e:
            self.audit.record(TOOL_ERROR, call.name, conversation_id, error=str(e))
            log_tool_result(LOGGER, call.name, e, success=False)
            return ToolResult.failure(e.user_message)
        except Exception as e:
            LOGGER.warning(f"Tool {call.name} raised {type(e).__name__}: {e}")
            self.audit.record(TOOL_ERROR, call.name, conversation_id, error=str(e))
            log_tool_result(LOGGER, call.name, e, success=False)
            return ToolResult.failure(f"{type(e).__name__}: {e}")

        result = self._to_result(output)
        event = TOOL_EXECUTED if result.success else TOOL_ERROR
        self.audit.record(event, call.name, conversation_id, success=result.success, error=result.error)
        log_tool_result(LOGGER, call.name, result.output if result.success else result.error, success=result.success)
        return result

    def _deny(
        self,
        call: ToolCall,
        conversation_id: Optional[str],
        message: str,
        decision: PermissionDecision,
    ) -> ToolResult:
        self.audit.record(
            TOOL_DENIED,
            call.name,
            conversation_id,
            reason=decision.reason,
            risk_level=decision.risk_level,
        )
        error = f"{message} {decision.reason}".strip() if decision.reason else message
        log_tool_result(LOGGER, call.name, error, success=False)
        return ToolResult.failure(error)

    async def _resolve_approval(
        self,
        call: ToolCall,
        action: str,
        decision: PermissionDecision,
        conversation_id: Optional[str],
    ) -> bool:
        if self.approval_resolver is None:
            LOGGER.info(f"No approval resolver configured, denying {call.name}")
            return False

        request = ApprovalRequest(
            tool_name=call.name,
            action=action,
            params=call.args,
            reason=decision.reason,
            risk_level=decision.risk_level,
            conversation_id=conversation_id,
        )
        try:
            if self.approval_timeout:
                response = await asyncio.wait_for(self.approval_resolver(request), timeout=self.approval_timeout)
            else:
                response = await self.approval_resolver(request)
        except asyncio.TimeoutError:
            LOGGER.warning(f"Approval for {call.name} timed out after {self.approval_timeout}s")
            return False
        except Exception as e:
            LOGGER.error(f"Approval resolver failed for {call.name}: {e}")
            return False

        if response.remember:
            level = PermissionLevel.ALLOW if response.approved else PermissionLevel.DENY
            self.permissions.remember(call.name, level, response.scope)
        return response.approved

    @staticmethod
    def _to_result(output: Any) -> ToolResult:
        """Map tool output to a result; ``{"ok": false, "error": ...}`` payloads are failures."""
        if isinstance(output, ToolResult):
            return output
        content = getattr(output, "content", output)
        if isinstance(content, str) and content.lstrip().startswith("{"):
            try:
                payload = json.loads(content)
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("ok") is False:
                return ToolResult.failure(str(payload.get("error") or "Tool reported failure"))
        return ToolResult.ok(content)
