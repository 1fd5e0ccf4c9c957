"""Conditional routing for the agent loop graph."""

from __future__ import annotations

import logging
from typing import Literal

from aegisAgent.utils.logging_utils import log_routing_decision

from .state import AgentLoopState

LOGGER = logging.getLogger("aegis.graph.routing")


def planning_check_route(state: AgentLoopState) -> Literal["planning", "execute"]:
    """Planned path when the classifier asked for it, direct execution otherwise."""
    if state.get("requires_planning", False):
        decision = "planning"
        reason = "Request classified as multi-step"
    else:
        decision = "execute"
        reason = "Direct execution"

    log_routing_decision(LOGGER, "planning_check", decision, reason)
    return decision


def execute_route(state: AgentLoopState, reflection_enabled: bool) -> Literal["reflect", "finish"]:
    """Reflect only on planned responses, and only when reflection is on.

    Cancelled streams and failed retries finish immediately.
    """
    if state.get("retry_failed", False):
        decision = "finish"
        reason = "Retry failed, keeping previous response"
    elif state.get("cancelled", False):
        decision = "finish"
        reason = "Stream cancelled"
    elif reflection_enabled and state.get("used_planning", False):
        decision = "reflect"
        reason = "Planned response, reflection enabled"
    else:
        decision = "finish"
        reason = "No reflection needed"

    log_routing_decision(LOGGER, "execute", decision, reason)
    return decision


def reflect_route(state: AgentLoopState) -> Literal["execute", "finish"]:
    """Back to execution when the reviewer asked for a revision within the retry cap."""
    if state.get("revision_requested", False):
        decision = "execute"
        reason = f"Revision requested (retry {state.get('retries', 0)}/{state.get('max_retries', 0)})"
    else:
        review = state.get("review")
        decision = "finish"
        if review is not None and not review.approved:
            reason = "Retry cap reached, returning last response"
        else:
            reason = "Response approved"

    log_routing_decision(LOGGER, "reflect", decision, reason)
    return decision
