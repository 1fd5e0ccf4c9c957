"""Execution node: runs the generation tool loop."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from aegisAgent.runtime.orchestrator import ChunkCallback, TurnOutcome
from aegisAgent.utils.logging_utils import log_error, log_node_entry, log_node_exit

if TYPE_CHECKING:
    from aegisAgent.graph.state import AgentLoopState

LOGGER = logging.getLogger("aegis.graph.execute")

TurnRunner = Callable[[str, str, bool, Optional[ChunkCallback]], Awaitable[TurnOutcome]]


def build_execute_node(*, run_turn: TurnRunner, emit: Callable[[str, str], None]):
    """Build the execution node.

    ``run_turn(prompt, conversation_id, with_storage, on_chunk)`` runs one
    GenerationOrchestrator pass. Errors of a first attempt propagate; a failed
    retry keeps the previous response.
    """

    async def execute_node(state: AgentLoopState) -> dict:
        log_node_entry(LOGGER, "execute", state)
        emit("executing", "Executing...")

        retries = state.get("retries", 0)
        try:
            outcome = await run_turn(
                state["execution_prompt"],
                state["conversation_id"],
                state.get("with_storage", True),
                state.get("on_chunk"),
            )
        except Exception as e:
            if retries == 0 or not state.get("response"):
                raise
            log_error(LOGGER, e, context=f"retry {retries}")
            updates = {"retry_failed": True, "revision_requested": False, "steps": ["executing"]}
            log_node_exit(LOGGER, "execute", updates)
            return updates

        updates = {
            "response": outcome.response,
            "cancelled": outcome.cancelled,
            "revision_requested": False,
            "steps": ["executing"],
        }
        log_node_exit(LOGGER, "execute", updates)
        return updates

    return execute_node
