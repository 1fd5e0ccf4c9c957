"""Agent-to-agent delegation: tasks, guard, service and background execution."""

from .queue import AsyncioTaskQueue, TaskQueue
from .runner import DelegatedTaskRunner
from .service import DelegationService, TaskCreation, current_task_id, running_task
from .tasks import InMemoryTaskRepository, Task, TaskRepository, TaskStatus
from .tracker import (
    DelegationAccepted,
    DelegationRejected,
    DelegationTracker,
    RejectionReason,
    accept,
)

__all__ = [
    "AsyncioTaskQueue",
    "TaskQueue",
    "DelegatedTaskRunner",
    "DelegationService",
    "TaskCreation",
    "current_task_id",
    "running_task",
    "InMemoryTaskRepository",
    "Task",
    "TaskRepository",
    "TaskStatus",
    "DelegationAccepted",
    "DelegationRejected",
    "DelegationTracker",
    "RejectionReason",
    "accept",
]
