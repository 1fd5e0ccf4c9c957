"""Planning-check and planning nodes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from aegisAgent.agents.classifier import ComplexityClassifier
from aegisAgent.agents.planner import PlanGenerator
from aegisAgent.agents.prompts import build_execution_prompt
from aegisAgent.utils.logging_utils import log_node_entry, log_node_exit

if TYPE_CHECKING:
    from aegisAgent.graph.state import AgentLoopState

LOGGER = logging.getLogger("aegis.graph.planning")

StepEmitter = Callable[[str, str], None]


def build_planning_check_node(*, classifier: ComplexityClassifier, planning_enabled: bool, emit: StepEmitter):
    """Build the node that decides between the direct and the planned path."""

    async def planning_check_node(state: AgentLoopState) -> dict:
        log_node_entry(LOGGER, "planning_check", state)
        emit("planning-check", "Analyzing request complexity...")

        prompt = state["prompt"]
        requires = planning_enabled and classifier.requires_planning(prompt)
        updates = {
            "requires_planning": requires,
            "execution_prompt": prompt,
            "steps": ["planning-check"],
        }
        log_node_exit(LOGGER, "planning_check", updates)
        return updates

    return planning_check_node


def build_planning_node(*, planner: PlanGenerator, emit: StepEmitter):
    """Build the planning node.

    A missing plan is not an error: the request is executed as-is.
    """

    async def planning_node(state: AgentLoopState) -> dict:
        log_node_entry(LOGGER, "planning", state)
        emit("planning", "Creating execution plan...")

        prompt = state["prompt"]
        plan = await planner.generate(prompt)
        if plan is None:
            LOGGER.info("No plan produced, falling back to direct execution")
            updates = {"plan": None, "used_planning": False, "execution_prompt": prompt}
        else:
            updates = {
                "plan": plan,
                "used_planning": True,
                "execution_prompt": build_execution_prompt(prompt, plan.text),
            }
        updates["steps"] = ["planning"]

        log_node_exit(LOGGER, "planning", updates)
        return updates

    return planning_node
