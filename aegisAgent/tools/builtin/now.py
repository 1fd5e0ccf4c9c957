"""Current date and time."""

from datetime import datetime, timedelta, timezone

from langchain_core.tools import tool

from aegisAgent.utils.error_handler import safe_tool_call


@tool
@safe_tool_call("now")
def now(utc_offset_hours: float = 0.0) -> str:
    """Return the current date and time in ISO 8601 format.

    Args:
        utc_offset_hours: Offset from UTC in hours (e.g. 8 for UTC+8, -5 for UTC-5)

    Example:
        now() -> "2025-10-23T10:30:00.123456+00:00"
    """
    if not -24 < utc_offset_hours < 24:
        raise ValueError(f"utc_offset_hours out of range: {utc_offset_hours}")
    tz = timezone(timedelta(hours=utc_offset_hours))
    return datetime.now(tz).isoformat()


__all__ = ["now"]
