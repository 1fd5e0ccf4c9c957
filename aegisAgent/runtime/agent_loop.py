"""
Agent loop - classify, plan, execute, reflect and retry.

The control flow lives in a LangGraph state graph (``aegisAgent.graph``);
this module owns the step listeners, the configuration and the per-call
result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from aegisAgent.agents.classifier import ComplexityClassifier
from aegisAgent.agents.planner import Plan, PlanGenerator
from aegisAgent.agents.reflection import ReflectionGate, ReflectionVerdict
from aegisAgent.config.settings import DEFAULT_MAX_REFLECTION_RETRIES, AgentSettings
from aegisAgent.graph.builder import build_agent_loop_graph
from aegisAgent.streaming.orchestrator import StreamingOrchestrator

from .orchestrator import ChunkCallback, GenerationOrchestrator, TurnOutcome

LOGGER = logging.getLogger("aegis.runtime.agent_loop")

StepListener = Callable[[str, str], None]

# Nodes per attempt (execute + reflect) plus the planning prefix, with slack
_RECURSION_SLACK = 10


@dataclass
class AgentLoopResult:
    response: str
    plan: Optional[Plan] = None
    review: Optional[ReflectionVerdict] = None
    steps: List[str] = field(default_factory=list)
    used_planning: bool = False
    retries: int = 0
    cancelled: bool = False


class AgentLoop:
    """Top-level state machine for one conversational turn.

    Step listeners registered with :meth:`on_step` are called synchronously,
    in registration order, at every phase transition. A listener that raises
    is logged and skipped.
    """

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        settings: AgentSettings,
        classifier: Optional[ComplexityClassifier] = None,
        planner: Optional[PlanGenerator] = None,
        reflection: Optional[ReflectionGate] = None,
        streamer: Optional[StreamingOrchestrator] = None,
    ):
        self.orchestrator = orchestrator
        self.settings = settings
        self.classifier = classifier or ComplexityClassifier()
        self.planner = planner or PlanGenerator(
            orchestrator.router,
            orchestrator.invoker.registry.allowed_tools(orchestrator.profile.tools if orchestrator.profile else None),
            timeout=settings.planning_timeout,
        )
        self.reflection = reflection or ReflectionGate(orchestrator.router)
        self.streamer = streamer or StreamingOrchestrator(orchestrator)
        self.max_retries = min(settings.max_reflection_retries, DEFAULT_MAX_REFLECTION_RETRIES)
        self._listeners: List[StepListener] = []

        self.graph = build_agent_loop_graph(
            classifier=self.classifier,
            planner=self.planner,
            gate=self.reflection,
            run_turn=self._run_turn,
            emit=self._emit,
            planning_enabled=settings.planning_enabled,
            reflection_enabled=settings.reflection_enabled,
        )

    def on_step(self, listener: StepListener) -> StepListener:
        """Register ``listener(phase, detail)``; returns it so it can be used as a decorator."""
        self._listeners.append(listener)
        return listener

    def remove_listener(self, listener: StepListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, phase: str, detail: str) -> None:
        LOGGER.info(f"Step: {phase} - {detail}")
        for listener in list(self._listeners):
            try:
                listener(phase, detail)
            except Exception as e:
                LOGGER.warning(f"Step listener failed on '{phase}': {type(e).__name__}: {e}")

    async def _run_turn(
        self,
        prompt: str,
        conversation_id: str,
        with_storage: bool,
        on_chunk: Optional[ChunkCallback],
    ) -> TurnOutcome:
        if on_chunk is not None:
            return await self.streamer.start(prompt, conversation_id, on_chunk=on_chunk, with_storage=with_storage)
        return await self.orchestrator.run(prompt, conversation_id, with_storage=with_storage)

    def _ensure_conversation(self, conversation_id: str) -> None:
        store = self.orchestrator.store
        if store.get_conversation(conversation_id) is None:
            profile = self.orchestrator.profile
            store.create_conversation(
                title="",
                agent_id=profile.id if profile else None,
                conversation_id=conversation_id,
            )

    async def execute(
        self,
        prompt: str,
        conversation_id: str,
        with_storage: bool = True,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> AgentLoopResult:
        """Run one request through the loop.

        Passing ``on_chunk`` streams every execution attempt; a stream
        cancelled with :meth:`cancel` ends the loop with the partial output.
        """
        if with_storage:
            self._ensure_conversation(conversation_id)

        initial = {
            "prompt": prompt,
            "conversation_id": conversation_id,
            "with_storage": with_storage,
            "on_chunk": on_chunk,
            "plan": None,
            "used_planning": False,
            "execution_prompt": prompt,
            "response": "",
            "cancelled": False,
            "retry_failed": False,
            "review": None,
            "revision_requested": False,
            "retries": 0,
            "max_retries": self.max_retries,
            "steps": [],
        }
        limit = 2 * (self.max_retries + 1) + _RECURSION_SLACK
        final = await self.graph.ainvoke(initial, config={"recursion_limit": limit})

        result = AgentLoopResult(
            response=final.get("response", ""),
            plan=final.get("plan"),
            review=final.get("review"),
            steps=list(final.get("steps", [])),
            used_planning=final.get("used_planning", False),
            retries=final.get("retries", 0),
            cancelled=final.get("cancelled", False),
        )
        LOGGER.info(
            f"Agent loop finished: used_planning={result.used_planning}, "
            f"retries={result.retries}, steps={result.steps}"
        )
        return result

    def cancel(self, conversation_id: str) -> bool:
        """Stop the active stream of a conversation at its next chunk."""
        return self.streamer.stop(conversation_id)
