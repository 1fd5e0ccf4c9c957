"""Audit trail for tool execution."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

LOGGER = logging.getLogger("aegis.audit")

TOOL_REQUEST = "tool.request"
TOOL_ALLOWED = "tool.allowed"
TOOL_DENIED = "tool.denied"
TOOL_EXECUTED = "tool.executed"
TOOL_ERROR = "tool.error"


@dataclass(frozen=True)
class AuditEntry:
    event: str
    tool_name: str
    conversation_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class AuditLogger:
    """Keeps audit entries in memory and optionally appends them to a JSONL file."""

    def __init__(self, path: Optional[Path] = None, max_entries: int = 10_000):
        self.path = Path(path) if path else None
        self.max_entries = max_entries
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    def record(
        self,
        event: str,
        tool_name: str,
        conversation_id: Optional[str] = None,
        **details: Any,
    ) -> AuditEntry:
        entry = AuditEntry(event, tool_name, conversation_id, details)
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.max_entries:
                del self._entries[: len(self._entries) - self.max_entries]
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(asdict(entry), ensure_ascii=False, default=str) + "\n")

        level = logging.WARNING if event in (TOOL_DENIED, TOOL_ERROR) else logging.DEBUG
        LOGGER.log(level, f"{event} {tool_name} conversation={conversation_id} {details}")
        return entry

    def entries(self, event: Optional[str] = None) -> List[AuditEntry]:
        with self._lock:
            if event is None:
                return list(self._entries)
            return [e for e in self._entries if e.event == event]

    def events(self) -> List[str]:
        return [e.event for e in self.entries()]
