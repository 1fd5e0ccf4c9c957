"""Reflection node: critique the response and decide on a retry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from aegisAgent.agents.prompts import build_revision_prompt
from aegisAgent.agents.reflection import ReflectionGate
from aegisAgent.utils.logging_utils import log_node_entry, log_node_exit

if TYPE_CHECKING:
    from aegisAgent.graph.state import AgentLoopState

LOGGER = logging.getLogger("aegis.graph.reflect")


def build_reflect_node(*, gate: ReflectionGate, emit: Callable[[str, str], None]):
    """Build the reflection node.

    A revision is requested only while ``retries < max_retries``; past the cap
    the last response is kept whatever the verdict.
    """

    async def reflect_node(state: AgentLoopState) -> dict:
        log_node_entry(LOGGER, "reflect", state)
        emit("reflecting", "Reviewing response quality...")

        prompt = state["prompt"]
        response = state.get("response", "")
        retries = state.get("retries", 0)
        max_retries = state.get("max_retries", 0)

        verdict = await gate.critique(response, prompt)
        updates = {"review": verdict, "revision_requested": False, "steps": ["reflecting"]}

        if not verdict.approved and retries < max_retries:
            attempt = retries + 1
            emit("retrying", f"Improving response (attempt {attempt})...")
            updates.update({
                "retries": attempt,
                "revision_requested": True,
                "execution_prompt": build_revision_prompt(prompt, verdict.feedback, response),
                "steps": ["reflecting", "retrying"],
            })
        elif not verdict.approved:
            LOGGER.info(f"Retry cap ({max_retries}) reached, keeping last response")

        log_node_exit(LOGGER, "reflect", updates)
        return updates

    return reflect_node
