"""Background execution of agent tasks."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from aegisAgent.agents.prompts import build_task_prompt
from aegisAgent.agents.registry import AgentRegistry
from aegisAgent.agents.schema import AgentProfile
from aegisAgent.config.settings import DEFAULT_MAX_DELEGATION_DEPTH
from aegisAgent.context.messages import Turn
from aegisAgent.persistence.conversation_store import ConversationStore

from .service import running_task
from .tasks import Task, TaskRepository, TaskStatus

if TYPE_CHECKING:
    from aegisAgent.runtime.agent_loop import AgentLoop, AgentLoopResult

LOGGER = logging.getLogger("aegis.delegation.runner")

NOTIFY_SUMMARY_CHARS = 500


class DelegatedTaskRunner:
    """Runs one queued task with its assigned agent.

    The ``pending → in_progress`` claim keeps a task from running twice when
    it was queued more than once.
    """

    def __init__(
        self,
        repository: TaskRepository,
        agents: AgentRegistry,
        store: ConversationStore,
        loop_factory: Callable[[AgentProfile], "AgentLoop"],
        max_depth: int = DEFAULT_MAX_DELEGATION_DEPTH,
    ):
        self.repository = repository
        self.agents = agents
        self.store = store
        self.loop_factory = loop_factory
        self.max_depth = max_depth

    async def __call__(self, task_id: str) -> Optional["AgentLoopResult"]:
        return await self.run(task_id)

    async def run(self, task_id: str) -> Optional["AgentLoopResult"]:
        task = self.repository.find_by_id(task_id)
        if task is None:
            LOGGER.warning(f"Task {task_id} not found, skipping")
            return None
        if task.assigned_agent_id is None:
            LOGGER.warning(f"Task {task_id} is not assigned to an agent, skipping")
            return None

        if task.delegation_depth > self.max_depth:
            LOGGER.warning(
                f"Task {task_id} depth {task.delegation_depth} exceeds max {self.max_depth}, cancelling"
            )
            self.repository.update(
                task_id,
                status=TaskStatus.CANCELLED,
                output=(
                    f"Task cancelled: delegation depth limit ({self.max_depth}) exceeded. "
                    f"Depth: {task.delegation_depth}."
                ),
            )
            return None

        if not self.repository.claim(task_id):
            LOGGER.info(f"Task {task_id} is not pending (already claimed?), skipping")
            return None

        try:
            profile = self.agents.get(task.assigned_agent_id)
            loop = self.loop_factory(profile)
            conversation = self.store.create_conversation(title=f"Task: {task.title}", agent_id=profile.id)

            with running_task(task.id):
                result = await loop.execute(build_task_prompt(task.title, task.description), conversation.id)

            completed = self.repository.update(
                task_id,
                status=TaskStatus.COMPLETED,
                output=result.response,
                completed_at=datetime.now(timezone.utc),
            )
            self._notify_delegator(completed, profile, result.response)
            LOGGER.info(f"Task {task_id} completed by {profile.id}")
            return result
        except Exception as e:
            LOGGER.warning(f"Task {task_id} failed: {type(e).__name__}: {e}")
            self.repository.update(task_id, status=TaskStatus.PENDING)
            raise

    def _notify_delegator(self, task: Task, profile: AgentProfile, response: str) -> None:
        if task.delegated_from is None:
            return
        source = self.repository.find_by_id(task.delegated_from)
        if source is None or source.assigned_agent_id is None:
            return

        conversation = self.store.latest_conversation_for_agent(source.assigned_agent_id)
        if conversation is None:
            return

        summary = response if len(response) <= NOTIFY_SUMMARY_CHARS else response[:NOTIFY_SUMMARY_CHARS - 3] + "..."
        self.store.append_turn(conversation.id, Turn.system(
            f"✅ {profile.name} completed delegated task \"{task.title}\": {summary}",
            metadata={"task_id": task.id, "source_task_id": source.id},
        ))
        LOGGER.debug(f"Notified conversation {conversation.id} of task {task.id}")
