"""Unit tests for permission-checked tool invocation."""

import asyncio
import json

import pytest
from langchain_core.tools import tool

from aegisAgent.hitl.audit import TOOL_ALLOWED, TOOL_DENIED, TOOL_ERROR, TOOL_EXECUTED, TOOL_REQUEST
from aegisAgent.hitl.permissions import PermissionManager
from aegisAgent.tools.invoker import ApprovalResponse, ToolInvoker
from aegisAgent.tools.registry import PERMISSION_EXECUTE, PERMISSION_WRITE, ToolMeta, ToolRegistry
from aegisAgent.tools.result import ToolCall, ToolResult
from aegisAgent.utils.error_handler import ToolExecutionError, safe_tool_call


@tool
def write_note(text: str) -> str:
    """Write a note."""
    return f"saved: {text}"


@tool
def reports_failure(query: str) -> str:
    """Returns a failure payload."""
    return json.dumps({"ok": False, "error": f"nothing found for {query}"})


@tool
@safe_tool_call("guarded")
def guarded(value: int) -> str:
    """Fails for negative values."""
    if value < 0:
        raise ValueError("value must be positive")
    return str(value)


@tool
def typed_failure(reason: str) -> str:
    """Raises a tool error with a user-facing message."""
    raise ToolExecutionError(f"internal: {reason}", "The archive is unavailable.")


@pytest.fixture
def registry(tool_registry):
    tool_registry.register_tool(write_note, ToolMeta(name="write_note", risk="medium"))
    tool_registry.register_tool(reports_failure, ToolMeta(name="reports_failure", risk="low"))
    tool_registry.register_tool(guarded, ToolMeta(name="guarded", risk="low"))
    tool_registry.register_tool(typed_failure, ToolMeta(name="typed_failure", risk="low"))
    return tool_registry


def make_invoker(registry, audit, resolver=None, timeout=None, permissions=None):
    return ToolInvoker(
        registry,
        permissions or PermissionManager(rules={}),
        audit=audit,
        approval_resolver=resolver,
        approval_timeout=timeout,
    )


class TestToolRegistry:

    def test_permission_from_risk(self, registry):
        assert registry.required_permission("write_note") == PERMISSION_WRITE
        assert registry.required_permission("unknown") == PERMISSION_EXECUTE

    def test_allowlist(self, registry):
        assert [t.name for t in registry.allowed_tools(["echo", "missing"])] == ["echo"]
        assert len(registry.allowed_tools(None)) == len(registry)

    def test_describe(self, registry):
        described = {item["name"]: item for item in registry.describe()}

        assert described["write_note"]["required_permission"] == PERMISSION_WRITE
        assert "text" in described["write_note"]["parameters"]


class TestInvoke:

    @pytest.mark.asyncio
    async def test_allowed_tool_runs(self, registry, audit):
        invoker = make_invoker(registry, audit)

        result = await invoker.invoke(ToolCall("c1", "echo", {"text": "hi"}), "conv-1")

        assert result == ToolResult.ok("echo: hi")
        assert audit.events() == [TOOL_REQUEST, TOOL_ALLOWED, TOOL_EXECUTED]
        assert audit.entries(TOOL_REQUEST)[0].conversation_id == "conv-1"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry, audit):
        result = await make_invoker(registry, audit).invoke(ToolCall("c1", "missing", {}))

        assert not result.success
        assert result.error == "Unknown tool: missing"

    @pytest.mark.asyncio
    async def test_exception_becomes_failure(self, registry, audit):
        result = await make_invoker(registry, audit).invoke(ToolCall("c1", "explode", {"reason": "disk full"}))

        assert not result.success
        assert "disk full" in result.error
        assert result.to_content().startswith("Error: ")
        assert audit.events()[-1] == TOOL_ERROR

    @pytest.mark.asyncio
    async def test_tool_execution_error_uses_user_message(self, registry, audit):
        result = await make_invoker(registry, audit).invoke(ToolCall("c1", "typed_failure", {"reason": "io"}))

        assert result.error == "The archive is unavailable."

    @pytest.mark.asyncio
    async def test_failure_payload(self, registry, audit):
        result = await make_invoker(registry, audit).invoke(ToolCall("c1", "reports_failure", {"query": "cats"}))

        assert not result.success
        assert result.error == "nothing found for cats"

    @pytest.mark.asyncio
    async def test_safe_tool_call_payload(self, registry, audit):
        result = await make_invoker(registry, audit).invoke(ToolCall("c1", "guarded", {"value": -1}))

        assert not result.success
        assert "value must be positive" in result.error

    @pytest.mark.asyncio
    async def test_denied_tool(self, registry, audit):
        result = await make_invoker(registry, audit).invoke(ToolCall("c1", "echo", {"file_path": "/etc/passwd"}))

        assert not result.success
        assert result.error.startswith("Tool execution denied by security policy.")
        assert TOOL_DENIED in audit.events()
        assert TOOL_EXECUTED not in audit.events()


class TestApproval:

    @pytest.mark.asyncio
    async def test_needs_approval_without_resolver_is_denied(self, registry, audit):
        result = await make_invoker(registry, audit).invoke(ToolCall("c1", "write_note", {"text": "x"}))

        assert not result.success
        assert result.error.startswith("Tool execution denied by approval policy.")

    @pytest.mark.asyncio
    async def test_approved(self, registry, audit):
        requests = []

        async def resolver(request):
            requests.append(request)
            return ApprovalResponse(approved=True)

        result = await make_invoker(registry, audit, resolver).invoke(
            ToolCall("c1", "write_note", {"text": "x"}), "conv-1",
        )

        assert result.output == "saved: x"
        assert requests[0].tool_name == "write_note"
        assert requests[0].action == PERMISSION_WRITE
        assert requests[0].conversation_id == "conv-1"

    @pytest.mark.asyncio
    async def test_remembered_approval_skips_next_prompt(self, registry, audit):
        calls = []

        async def resolver(request):
            calls.append(request)
            return ApprovalResponse(approved=True, remember=True)

        invoker = make_invoker(registry, audit, resolver)
        await invoker.invoke(ToolCall("c1", "write_note", {"text": "a"}))
        result = await invoker.invoke(ToolCall("c2", "write_note", {"text": "b"}))

        assert result.success
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_approval_timeout_denies(self, registry, audit):
        async def resolver(request):
            await asyncio.sleep(1)
            return ApprovalResponse(approved=True)

        result = await make_invoker(registry, audit, resolver, timeout=0.01).invoke(
            ToolCall("c1", "write_note", {"text": "x"}),
        )

        assert not result.success

    @pytest.mark.asyncio
    async def test_resolver_error_denies(self, registry, audit):
        async def resolver(request):
            raise RuntimeError("terminal closed")

        result = await make_invoker(registry, audit, resolver).invoke(ToolCall("c1", "write_note", {"text": "x"}))

        assert not result.success


class TestToolCall:

    def test_from_dict_fills_missing_id(self):
        call = ToolCall.from_dict({"name": "echo", "args": None}, index=3)

        assert call.id == "call_3"
        assert call.args == {}
