"""Delegation guard: depth limit and cycle detection over a task's ancestor chain."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Union

from aegisAgent.config.settings import DEFAULT_MAX_DELEGATION_DEPTH, DelegationSettings

from .tasks import Task

LOGGER = logging.getLogger("aegis.delegation.tracker")


class RejectionReason(str, Enum):
    DEPTH_EXCEEDED = "depth_exceeded"
    CIRCULAR_DELEGATION = "circular_delegation"


@dataclass(frozen=True)
class DelegationAccepted:
    depth: int
    delegated_from: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class DelegationRejected:
    reason: RejectionReason
    message: str
    depth: int

    @property
    def accepted(self) -> bool:
        return False


DelegationDecision = Union[DelegationAccepted, DelegationRejected]


def accept(
    source_task: Optional[Task],
    target_agent_id: str,
    ancestors: Sequence[Task] = (),
    max_depth: int = DEFAULT_MAX_DELEGATION_DEPTH,
    circular_check: bool = True,
) -> DelegationDecision:
    """Decide whether ``source_task`` may delegate to ``target_agent_id``.

    ``ancestors`` is the chain starting at ``source_task`` and following
    ``delegated_from``; when empty, only ``source_task`` itself is checked.
    """
    if source_task is None:
        return DelegationAccepted(depth=0)

    depth = source_task.delegation_depth + 1
    if depth > max_depth:
        LOGGER.warning(
            f"Delegation depth exceeded: source {source_task.id} at depth "
            f"{source_task.delegation_depth}, max {max_depth}"
        )
        return DelegationRejected(
            RejectionReason.DEPTH_EXCEEDED,
            f"Task not created: delegation depth limit ({max_depth}) exceeded. "
            f"Current chain depth: {source_task.delegation_depth}.",
            depth,
        )

    if circular_check:
        chain = list(ancestors) or [source_task]
        if any(task.assigned_agent_id == target_agent_id for task in chain):
            LOGGER.warning(f"Circular delegation to {target_agent_id} from task {source_task.id}")
            return DelegationRejected(
                RejectionReason.CIRCULAR_DELEGATION,
                "Task not created: circular delegation detected, "
                "target agent already appears in the delegation chain.",
                depth,
            )

    return DelegationAccepted(depth=depth, delegated_from=source_task.id)


class DelegationTracker:
    """:func:`accept` bound to a delegation configuration."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DELEGATION_DEPTH, circular_check: bool = True):
        self.max_depth = max_depth
        self.circular_check = circular_check

    @classmethod
    def from_settings(cls, settings: DelegationSettings) -> "DelegationTracker":
        return cls(max_depth=settings.max_depth, circular_check=settings.circular_check)

    def accept(
        self,
        source_task: Optional[Task],
        target_agent_id: str,
        ancestors: Sequence[Task] = (),
    ) -> DelegationDecision:
        return accept(
            source_task,
            target_agent_id,
            ancestors,
            max_depth=self.max_depth,
            circular_check=self.circular_check,
        )
