"""Tool metadata management and registration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from langchain_core.tools import BaseTool

# Permission actions understood by the permission manager
PERMISSION_NONE = "none"
PERMISSION_READ = "read"
PERMISSION_WRITE = "write"
PERMISSION_EXECUTE = "execute"

_RISK_TO_PERMISSION = {
    "low": PERMISSION_READ,
    "medium": PERMISSION_WRITE,
    "high": PERMISSION_EXECUTE,
}


@dataclass(frozen=True, slots=True)
class ToolMeta:
    """Describes governance attributes for a tool."""

    name: str
    risk: str = "low"
    tags: Tuple[str, ...] = field(default_factory=tuple)
    required_permission: Optional[str] = None

    def permission(self) -> str:
        return self.required_permission or _RISK_TO_PERMISSION.get(self.risk, PERMISSION_EXECUTE)


class ToolRegistry:
    """Tracks tool instances and governance metadata."""

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None, meta: Optional[Iterable[ToolMeta]] = None) -> None:
        self._tools: Dict[str, BaseTool] = {}
        self._meta: Dict[str, ToolMeta] = {}
        if tools:
            for tool in tools:
                self.register_tool(tool)
        if meta:
            for item in meta:
                self.register_meta(item)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register_tool(self, tool: BaseTool, meta: Optional[ToolMeta] = None) -> None:
        self._tools[tool.name] = tool
        if meta is not None:
            self.register_meta(meta)

    def register_meta(self, metadata: ToolMeta) -> None:
        self._meta[metadata.name] = metadata

    def get_tool(self, name: str) -> BaseTool:
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def get_tool_optional(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def get_meta(self, name: str) -> ToolMeta:
        if name not in self._meta:
            raise KeyError(f"Missing metadata for tool: {name}")
        return self._meta[name]

    def get_meta_optional(self, name: str) -> ToolMeta | None:
        return self._meta.get(name)

    def required_permission(self, name: str) -> str:
        """Permission action for a tool; unknown metadata is treated as execute."""
        meta = self._meta.get(name)
        return meta.permission() if meta else PERMISSION_EXECUTE

    def list_tools(self) -> List[BaseTool]:
        return list(self._tools.values())

    def allowed_tools(self, allowlist: Optional[Iterable[str]]) -> List[BaseTool]:
        """Tools named in ``allowlist``; ``None`` means every registered tool."""
        if allowlist is None:
            return self.list_tools()
        return [self._tools[name] for name in allowlist if name in self._tools]

    def describe(self) -> List[Dict[str, object]]:
        """Name, description, parameters and permission for each tool."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.args,
                "required_permission": self.required_permission(tool.name),
            }
            for tool in self._tools.values()
        ]
