"""Create a task, optionally delegated to another agent."""

from __future__ import annotations

import json
from typing import Optional

from langchain_core.tools import tool

from aegisAgent.utils.error_handler import safe_tool_call

# Set by runtime after the delegation service is built
_delegation_service = None


def set_delegation_service(service) -> None:
    """Bind the delegation service used by the ``delegate_task`` tool."""
    global _delegation_service
    _delegation_service = service


def get_delegation_service():
    return _delegation_service


@tool
@safe_tool_call("delegate_task")
def delegate_task(
    title: str,
    agent_id: Optional[str] = None,
    description: str = "",
    priority: str = "medium",
    source_task_id: Optional[str] = None,
) -> str:
    """Create a task and optionally assign it to another agent.

    Tasks assigned to an agent while you are working on a task are delegated:
    they run in the background and you are notified when they complete.
    Delegation chains are limited in depth and may not loop back to an agent
    already in the chain.

    Args:
        title: Short task title (required)
        agent_id: Id of the agent that should do the work
        description: Self-contained description: goal, context, expected output
        priority: low | medium | high | urgent (high and urgent run in the background)
        source_task_id: Id of the task this work is delegated from, if known

    Examples:
        delegate_task("Summarize Q3 report", agent_id="researcher",
                      description="Read the Q3 report and return 5 bullet points")
    """
    service = _delegation_service
    if service is None:
        return json.dumps({"ok": False, "error": "Delegation service not initialized"}, ensure_ascii=False)

    creation = service.create_task(
        title=title,
        description=description,
        assigned_agent_id=agent_id,
        priority=priority,
        source_task_id=source_task_id,
    )
    payload = {"ok": creation.ok, "message": creation.message}
    if creation.task is not None:
        payload.update({
            "task_id": creation.task.id,
            "delegation_depth": creation.task.delegation_depth,
            "dispatched": creation.dispatched,
        })
    if not creation.ok:
        payload["error"] = creation.message
    if creation.rejection is not None:
        payload["reason"] = creation.rejection.reason.value
    return json.dumps(payload, ensure_ascii=False)


__all__ = ["delegate_task", "set_delegation_service", "get_delegation_service"]
