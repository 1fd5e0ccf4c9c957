"""Tool call requests and results."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model."""

    id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "ToolCall":
        return cls(
            id=data.get("id") or f"call_{index}",
            name=data.get("name") or "",
            args=dict(data.get("args") or {}),
        )


@dataclass(frozen=True)
class ToolResult:
    """Structured outcome of a tool invocation."""

    success: bool
    output: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: Any) -> "ToolResult":
        return cls(success=True, output=output)

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_content(self) -> str:
        """Text sent back to the model as the tool-result turn."""
        if not self.success:
            return f"Error: {self.error}"
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, ensure_ascii=False, default=str)

    def as_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "output": self.output, "error": self.error}
