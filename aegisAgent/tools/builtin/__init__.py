"""Built-in tools and their permission metadata."""

from typing import List, Tuple

from langchain_core.tools import BaseTool

from aegisAgent.tools.registry import PERMISSION_NONE, PERMISSION_WRITE, ToolMeta

from .delegate_task import delegate_task, set_delegation_service
from .now import now


def builtin_tools() -> List[Tuple[BaseTool, ToolMeta]]:
    return [
        (now, ToolMeta(name="now", risk="low", tags=("time",), required_permission=PERMISSION_NONE)),
        (delegate_task, ToolMeta(
            name="delegate_task",
            risk="medium",
            tags=("tasks", "delegation"),
            required_permission=PERMISSION_WRITE,
        )),
    ]


__all__ = ["builtin_tools", "delegate_task", "now", "set_delegation_service"]
