"""
Tool result compressor.

Responsibilities:
1. Detect the shape of bulky tool output (JSON, file dump, command output)
2. Replace it with a short tagged summary keeping identifying details
3. Guarantee the summary is less than half the original length
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .messages import Turn

logger = logging.getLogger("aegis.context.compressor")

DEFAULT_THRESHOLD_CHARS = 200
MIN_THRESHOLD_CHARS = 64

COMMAND_TOOLS = frozenset({"bash", "shell", "run_command", "run_bash_command", "exec", "terminal"})

_FILE_PATTERN = re.compile(r"^\s*File:\s*([^\n]+)", re.IGNORECASE | re.MULTILINE)
_EXIT_PATTERN = re.compile(r"exit(?:\s*code|\s*status)?\s*[:=]\s*(-?\d+)", re.IGNORECASE)


@dataclass
class CompressionResult:
    """Compression outcome for a message list."""
    messages: List[Turn]
    compressed_count: int
    before_chars: int
    after_chars: int

    @property
    def compression_ratio(self) -> float:
        if not self.before_chars:
            return 1.0
        return self.after_chars / self.before_chars


def _clip(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


def _clip_keeping_marker(summary: str, limit: int) -> str:
    marker, _, body = summary.partition(": ")
    marker += ":"
    room = limit - len(marker) - 1
    if not body or room < 4:
        return marker
    return f"{marker} {_clip(body, room)}"


def _first_line(text: str, skip: Optional[re.Pattern] = None) -> str:
    for line in text.splitlines():
        if line.strip() and not (skip and skip.search(line)):
            return line.strip()
    return ""


def _line_count(text: str) -> int:
    return len(text.splitlines()) or 1


class ToolResultCompressor:
    """Summarize bulky tool-result turns by content shape."""

    def __init__(self, threshold_chars: int = DEFAULT_THRESHOLD_CHARS):
        self.threshold_chars = max(threshold_chars, MIN_THRESHOLD_CHARS)

    def should_compress(self, turn: Turn) -> bool:
        return turn.role == "tool" and len(turn.content) > self.threshold_chars

    def summarize(self, content: str, tool_name: Optional[str] = None) -> str:
        """Return the tagged summary for one tool output.

        The summary keeps its shape marker and is shorter than half of
        ``content``; content too short to fit the marker gets the bare marker.
        """
        summary = (
            self._summarize_json(content)
            or self._summarize_file(content)
            or self._summarize_command(content, tool_name)
            or self._summarize_generic(content)
        )
        limit = (len(content) - 1) // 2
        if len(summary) > limit:
            summary = _clip_keeping_marker(summary, limit)
        return summary

    def compress(self, messages: Sequence[Turn]) -> CompressionResult:
        result: List[Turn] = []
        compressed = 0
        before = after = 0
        for turn in messages:
            if not self.should_compress(turn):
                result.append(turn)
                continue
            summary = self.summarize(turn.content, turn.tool_name)
            before += len(turn.content)
            after += len(summary)
            compressed += 1
            result.append(turn.with_content(summary, compressed=True, original_length=len(turn.content)))

        if compressed:
            logger.debug(f"Compressed {compressed} tool results: {before} → {after} chars")
        return CompressionResult(
            messages=result,
            compressed_count=compressed,
            before_chars=before,
            after_chars=after,
        )

    # ----- shapes -----

    def _summarize_json(self, content: str) -> Optional[str]:
        stripped = content.strip()
        if not stripped or stripped[0] not in "{[":
            return None
        try:
            data = json.loads(stripped)
        except ValueError:
            return None

        if isinstance(data, dict):
            keys = [str(k) for k in data.keys()]
            preview = _clip(", ".join(keys[:4]), 50)
            more = ", ..." if len(keys) > 4 else ""
            return f"JSON result: {len(keys)} keys ({preview}{more})"
        if isinstance(data, list):
            detail = ""
            if data and isinstance(data[0], dict):
                detail = f" of objects ({_clip(', '.join(str(k) for k in list(data[0].keys())[:4]), 50)})"
            return f"JSON result: {len(data)} items{detail}"
        return None

    def _summarize_file(self, content: str) -> Optional[str]:
        match = _FILE_PATTERN.search(content)
        if not match:
            return None
        path = _clip(match.group(1), 60)
        return f"File read: {path} ({_line_count(content)} lines, {len(content.encode('utf-8'))} bytes)"

    def _summarize_command(self, content: str, tool_name: Optional[str]) -> Optional[str]:
        match = _EXIT_PATTERN.search(content)
        if not match and (tool_name or "").lower() not in COMMAND_TOOLS:
            return None
        exit_code = match.group(1) if match else "unknown"
        first = _clip(_first_line(content, skip=_EXIT_PATTERN), 60)
        return f"Command result: exit {exit_code}, {first} ({_line_count(content)} lines)"

    def _summarize_generic(self, content: str) -> str:
        first = _clip(_first_line(content), 60)
        return f"Tool result compressed: {first} ({_line_count(content)} lines, {len(content)} chars)"


def compress_tool_results(messages: Sequence[Turn], threshold_chars: int = DEFAULT_THRESHOLD_CHARS) -> List[Turn]:
    """Functional shortcut returning only the compressed message list."""
    return ToolResultCompressor(threshold_chars).compress(messages).messages
