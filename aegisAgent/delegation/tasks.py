"""Task model and repository for agent delegation."""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

LOGGER = logging.getLogger("aegis.delegation.tasks")

PRIORITIES = ("low", "medium", "high", "urgent")


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Task:
    """A unit of work, optionally assigned to an agent.

    ``delegation_depth`` is 0 exactly when ``delegated_from`` is None;
    otherwise it is the parent's depth plus one. Both are fixed at creation.
    """

    id: str
    title: str
    description: str = ""
    assigned_agent_id: Optional[str] = None
    delegated_from: Optional[str] = None
    delegation_depth: int = 0
    priority: str = "medium"
    status: TaskStatus = TaskStatus.PENDING
    output: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if (self.delegated_from is None) != (self.delegation_depth == 0):
            raise ValueError(
                f"Task {self.id}: delegation_depth={self.delegation_depth} "
                f"inconsistent with delegated_from={self.delegated_from!r}"
            )

    @property
    def is_delegated(self) -> bool:
        return self.delegated_from is not None


def new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:12]}"


class TaskRepository(Protocol):
    """Task storage used by delegation."""

    def create(self, task: Task) -> Task:
        ...

    def find_by_id(self, task_id: str) -> Optional[Task]:
        ...

    def ancestors_of(self, task: Task) -> List[Task]:
        """``task`` followed by its delegation parents, nearest first."""
        ...

    def update(self, task_id: str, **changes: Any) -> Task:
        ...

    def claim(self, task_id: str) -> bool:
        """Atomically move a task from pending to in_progress."""
        ...

    def list(self, status: Optional[TaskStatus] = None) -> List[Task]:
        ...


class InMemoryTaskRepository:
    """Thread-safe in-process task repository."""

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._tasks)

    def create(self, task: Task) -> Task:
        with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task already exists: {task.id}")
            if task.delegated_from is not None and task.delegated_from not in self._tasks:
                raise KeyError(f"Unknown parent task: {task.delegated_from}")
            self._tasks[task.id] = task
        LOGGER.debug(f"Created task {task.id} (depth {task.delegation_depth})")
        return task

    def find_by_id(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def ancestors_of(self, task: Task) -> List[Task]:
        chain: List[Task] = []
        seen = set()
        current: Optional[Task] = task
        with self._lock:
            while current is not None and current.id not in seen:
                chain.append(current)
                seen.add(current.id)
                current = self._tasks.get(current.delegated_from) if current.delegated_from else None
        return chain

    def update(self, task_id: str, **changes: Any) -> Task:
        if "delegated_from" in changes or "delegation_depth" in changes:
            raise ValueError("Delegation fields are immutable")
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise KeyError(f"Unknown task: {task_id}")
            updated = dataclasses.replace(task, **changes)
            self._tasks[task_id] = updated
            return updated

    def claim(self, task_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or task.status is not TaskStatus.PENDING:
                return False
            self._tasks[task_id] = dataclasses.replace(task, status=TaskStatus.IN_PROGRESS)
            return True

    def list(self, status: Optional[TaskStatus] = None) -> List[Task]:
        with self._lock:
            tasks = list(self._tasks.values())
        if status is not None:
            tasks = [t for t in tasks if t.status is status]
        return tasks
