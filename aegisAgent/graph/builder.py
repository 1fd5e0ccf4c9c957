"""Factory for assembling the agent loop state machine."""

from __future__ import annotations

import logging
from typing import Callable

from langgraph.graph import END, START, StateGraph

from aegisAgent.agents.classifier import ComplexityClassifier
from aegisAgent.agents.planner import PlanGenerator
from aegisAgent.agents.reflection import ReflectionGate
from aegisAgent.graph.nodes import (
    build_execute_node,
    build_planning_check_node,
    build_planning_node,
    build_reflect_node,
)
from aegisAgent.graph.nodes.execute import TurnRunner
from aegisAgent.graph.routing import execute_route, planning_check_route, reflect_route
from aegisAgent.graph.state import AgentLoopState

LOGGER = logging.getLogger("aegis.graph.builder")


def build_agent_loop_graph(
    *,
    classifier: ComplexityClassifier,
    planner: PlanGenerator,
    gate: ReflectionGate,
    run_turn: TurnRunner,
    emit: Callable[[str, str], None],
    planning_enabled: bool,
    reflection_enabled: bool,
):
    """Compose the classify → plan → execute → reflect loop.

        START → planning_check ─┬→ planning ─┐
                                └────────────┴→ execute ─┬→ reflect ─┬→ END
                                                 ↑       └→ END      │
                                                 └───── (revise) ────┘

    - planning is skipped when the classifier says no or planning is off
    - reflect runs only when reflection is on and a plan was used
    - reflect loops back to execute at most ``max_retries`` times
    """

    # ========== Build nodes ==========
    planning_check_node = build_planning_check_node(
        classifier=classifier,
        planning_enabled=planning_enabled,
        emit=emit,
    )
    planning_node = build_planning_node(planner=planner, emit=emit)
    execute_node = build_execute_node(run_turn=run_turn, emit=emit)
    reflect_node = build_reflect_node(gate=gate, emit=emit)

    # ========== Build graph ==========
    graph = StateGraph(AgentLoopState)
    graph.add_node("planning_check", planning_check_node)
    graph.add_node("planning", planning_node)
    graph.add_node("execute", execute_node)
    graph.add_node("reflect", reflect_node)

    def after_execute(state: AgentLoopState) -> str:
        return execute_route(state, reflection_enabled)

    graph.add_edge(START, "planning_check")

    graph.add_conditional_edges(
        "planning_check",
        planning_check_route,
        {
            "planning": "planning",
            "execute": "execute",
        },
    )

    # Plan or no plan, execution follows
    graph.add_edge("planning", "execute")

    graph.add_conditional_edges(
        "execute",
        after_execute,
        {
            "reflect": "reflect",
            "finish": END,
        },
    )

    graph.add_conditional_edges(
        "reflect",
        reflect_route,
        {
            "execute": "execute",
            "finish": END,
        },
    )

    LOGGER.debug(f"Agent loop graph built (planning={planning_enabled}, reflection={reflection_enabled})")
    return graph.compile()
