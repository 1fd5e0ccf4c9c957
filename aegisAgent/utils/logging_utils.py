"""Logging utilities for AegisAgent."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "aegis"
DEFAULT_LOGS_DIR = Path("logs")

_log_file: Optional[Path] = None


def _new_log_file(logs_dir: Path) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir / f"aegis_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"


def setup_logging(
    level: int = logging.INFO,
    logs_dir: Optional[Path] = None,
) -> logging.Logger:
    """Setup logging configuration for AegisAgent.

    Args:
        level: Level for the file handler (default: INFO)
        logs_dir: Directory for log files (default: ./logs, created on first use)

    Returns:
        Configured logger instance
    """
    global _log_file

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all child logs
    logger.propagate = False

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    _log_file = _new_log_file(Path(logs_dir) if logs_dir else DEFAULT_LOGS_DIR)

    # File handler (detailed logs)
    file_handler = logging.FileHandler(_log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    # Console handler (user-friendly)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.info(f"AegisAgent session started, logging to {_log_file}")

    return logger


def current_log_file() -> Optional[Path]:
    return _log_file


def log_tool_call(
    logger: logging.Logger,
    tool_name: str,
    args: Dict[str, Any],
    conversation_id: Optional[str] = None,
) -> None:
    scope = f" [{conversation_id}]" if conversation_id else ""
    logger.info(f"Tool call: {tool_name}{scope}")
    logger.debug(f"  Arguments: {json.dumps(args, ensure_ascii=False, default=str)}")


def log_tool_result(
    logger: logging.Logger,
    tool_name: str,
    result: Any,
    success: bool = True,
    max_length: int = 500,
) -> None:
    """Log a tool outcome; the result text is cut at ``max_length`` characters."""
    logger.info(f"Tool result: {tool_name} - {'ok' if success else 'failed'}")
    text = str(result)
    if len(text) > max_length:
        text = text[:max_length] + "... (truncated)"
    logger.debug(f"  Result: {text}")


def log_error(logger: logging.Logger, error: Exception, context: str = "") -> None:
    where = f" ({context})" if context else ""
    logger.error(f"{type(error).__name__}{where}: {error}")
    logger.debug("Full traceback:", exc_info=error)


def log_user_message(logger: logging.Logger, content: str) -> None:
    logger.info(f"User input: {content[:100]}{'...' if len(content) > 100 else ''}")


def log_agent_response(logger: logging.Logger, content: str) -> None:
    logger.info(f"Agent response: {content[:100]}{'...' if len(content) > 100 else ''}")


def log_prompt(logger: logging.Logger, phase: str, prompt: str, max_length: int = 500) -> None:
    """Log a prompt sent to a persona, truncated to ``max_length`` characters.

    Args:
        logger: Logger instance
        phase: Phase name (planning/executing/reflecting/summary)
        prompt: Prompt content
        max_length: Truncation length
    """
    shown = prompt if len(prompt) <= max_length else prompt[:max_length] + "... (truncated)"
    logger.debug(f"Prompt for {phase} ({len(prompt)} chars):\n{shown}")


def log_routing_decision(logger: logging.Logger, from_node: str, decision: str, reason: str = "") -> None:
    """Log routing decision.

    Args:
        logger: Logger instance
        from_node: Source node making the decision
        decision: Routing destination
        reason: Reason for the routing decision
    """
    logger.info(f"Routing decision from {from_node}: → {decision}")
    if reason:
        logger.info(f"  → Reason: {reason}")


def log_node_entry(logger: logging.Logger, node_name: str, state: Dict[str, Any]) -> None:
    """Log node entry with a snapshot of the loop state.

    Args:
        logger: Logger instance
        node_name: Name of the node being entered
        state: Current state dictionary
    """
    logger.info(f"# ENTERING NODE: {node_name}")
    logger.debug(f"  - conversation_id: {state.get('conversation_id')}")
    logger.debug(f"  - used_planning: {state.get('used_planning', False)}")
    logger.debug(f"  - retries: {state.get('retries', 0)}")
    logger.debug(f"  - steps: {len(state.get('steps', []))}")


def log_node_exit(logger: logging.Logger, node_name: str, updates: Dict[str, Any]) -> None:
    """Log node exit with state updates.

    Args:
        logger: Logger instance
        node_name: Name of the node being exited
        updates: State updates returned by the node
    """
    logger.info(f"# EXITING NODE: {node_name}")
    for key, value in updates.items():
        if key == "steps":
            logger.debug(f"  - steps: +{len(value)} new events")
        elif isinstance(value, str) and len(value) > 120:
            logger.debug(f"  - {key}: {value[:120]}...")
        else:
            logger.debug(f"  - {key}: {value}")


# Singleton logger instance
_global_logger = None


def get_logger() -> logging.Logger:
    """Get or create the global logger instance.

    Returns:
        Global logger instance
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = setup_logging()
    return _global_logger
