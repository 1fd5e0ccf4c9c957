"""
Delegation service - creates tasks, validates delegation and dispatches work.

The task a worker is currently executing is kept in a context variable, so a
``delegate_task`` call made by that agent is tracked as a delegation even
when the model does not pass a source task id.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from aegisAgent.agents.registry import AgentRegistry
from aegisAgent.context.messages import Turn
from aegisAgent.persistence.conversation_store import ConversationStore

from .queue import TaskQueue
from .tasks import PRIORITIES, Task, TaskRepository, new_task_id
from .tracker import DelegationRejected, DelegationTracker

LOGGER = logging.getLogger("aegis.delegation.service")

DEEP_CHAIN_DEPTH = 2

_current_task_id: ContextVar[Optional[str]] = ContextVar("aegis_current_task_id", default=None)


def current_task_id() -> Optional[str]:
    return _current_task_id.get()


@contextmanager
def running_task(task_id: str) -> Iterator[None]:
    """Mark ``task_id`` as the task being executed in this context."""
    token = _current_task_id.set(task_id)
    try:
        yield
    finally:
        _current_task_id.reset(token)


@dataclass(frozen=True)
class TaskCreation:
    """Outcome of :meth:`DelegationService.create_task`."""
    ok: bool
    message: str
    task: Optional[Task] = None
    rejection: Optional[DelegationRejected] = None
    dispatched: bool = False


class DelegationService:
    def __init__(
        self,
        repository: TaskRepository,
        tracker: DelegationTracker,
        agents: AgentRegistry,
        store: ConversationStore,
        queue: Optional[TaskQueue] = None,
        auto_dispatch_priorities: Iterable[str] = ("high", "urgent"),
    ):
        self.repository = repository
        self.tracker = tracker
        self.agents = agents
        self.store = store
        self.queue = queue
        self.auto_dispatch_priorities = frozenset(auto_dispatch_priorities)

    def create_task(
        self,
        title: str,
        description: str = "",
        assigned_agent_id: Optional[str] = None,
        priority: str = "medium",
        source_task_id: Optional[str] = None,
    ) -> TaskCreation:
        """Create a task; rejected delegations never create a task.

        Delegated tasks and high-priority agent tasks are queued for
        background execution. Other agent tasks are announced in the agent's
        latest conversation.
        """
        title = (title or "").strip()
        if not title:
            return TaskCreation(False, "Task not created: title is required.")
        if priority not in PRIORITIES:
            return TaskCreation(False, f"Task not created: unknown priority \"{priority}\".")

        if assigned_agent_id is not None and not self.agents.is_enabled(assigned_agent_id):
            return TaskCreation(False, f"Task not created: no active agent found with id \"{assigned_agent_id}\".")

        source: Optional[Task] = None
        if source_task_id is not None:
            source = self.repository.find_by_id(source_task_id)
            if source is None:
                return TaskCreation(False, f"Task not created: no task found with ID {source_task_id}.")
        elif assigned_agent_id is not None and current_task_id() is not None:
            source = self.repository.find_by_id(current_task_id())

        delegated_from = None
        depth = 0
        if source is not None and assigned_agent_id is not None:
            decision = self.tracker.accept(source, assigned_agent_id, self.repository.ancestors_of(source))
            if not decision.accepted:
                return TaskCreation(False, decision.message, rejection=decision)
            delegated_from = decision.delegated_from
            depth = decision.depth
            if depth > DEEP_CHAIN_DEPTH:
                LOGGER.info(f"Deep delegation chain: source {source.id}, new depth {depth}")

        task = self.repository.create(Task(
            id=new_task_id(),
            title=title,
            description=description or "",
            assigned_agent_id=assigned_agent_id,
            delegated_from=delegated_from,
            delegation_depth=depth,
            priority=priority,
        ))

        message = f"Task created (ID: {task.id}): \"{task.title}\""
        dispatched = False
        if assigned_agent_id is not None:
            agent_name = self.agents.get(assigned_agent_id).name
            message += f", assigned to {agent_name}"
            if task.is_delegated or task.priority in self.auto_dispatch_priorities:
                dispatched = self._dispatch(task)
                if dispatched:
                    message += " (dispatched for background execution)"
            else:
                self._announce(task)

        message += f" [{task.priority}] status: {task.status.value}."
        if task.is_delegated:
            message += f" Delegation depth: {task.delegation_depth}."

        LOGGER.info(message)
        return TaskCreation(True, message, task=task, dispatched=dispatched)

    def _dispatch(self, task: Task) -> bool:
        if self.queue is None:
            LOGGER.warning(f"No task queue configured, task {task.id} stays pending")
            return False
        self.queue.enqueue(task.id)
        return True

    def _announce(self, task: Task) -> None:
        """Post a "New Task" note into the assigned agent's latest conversation."""
        profile = self.agents.get(task.assigned_agent_id)
        conversation = self.store.latest_conversation_for_agent(profile.id)
        if conversation is None:
            conversation = self.store.create_conversation(title=profile.name, agent_id=profile.id)

        description = f"\n{task.description}" if task.description else ""
        self.store.append_turn(conversation.id, Turn.system(
            f"New Task: {task.title}{description}\n\n"
            "Reply to work on this task. When done, it can be marked complete.",
            metadata={"task_id": task.id},
        ))
