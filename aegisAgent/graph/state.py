"""Shared state definition for the agent loop graph."""

from __future__ import annotations

import operator
from typing import Annotated, List, Optional, TypedDict

from aegisAgent.agents.planner import Plan
from aegisAgent.agents.reflection import ReflectionVerdict
from aegisAgent.runtime.orchestrator import ChunkCallback


class AgentLoopState(TypedDict, total=False):
    """State of one ``AgentLoop.execute`` call.

    The graph runs without a checkpointer, so callables and dataclasses are
    fine here; nothing is serialized.
    """

    # ========== Request ==========
    prompt: str                    # Original user request, never rewritten
    conversation_id: str
    with_storage: bool
    on_chunk: Optional[ChunkCallback]  # Streaming callback (None = non-streaming)

    # ========== Planning ==========
    requires_planning: bool
    plan: Optional[Plan]
    used_planning: bool

    # ========== Execution ==========
    execution_prompt: str          # Prompt sent to the orchestrator (plan / revision folded in)
    response: str
    cancelled: bool
    retry_failed: bool             # A retry's generation raised; keep the previous response

    # ========== Reflection ==========
    review: Optional[ReflectionVerdict]
    revision_requested: bool
    retries: int
    max_retries: int

    # ========== Observability ==========
    steps: Annotated[List[str], operator.add]
