"""Graph nodes exports - agent loop."""

from .execute import build_execute_node
from .planning import build_planning_check_node, build_planning_node
from .reflect import build_reflect_node

__all__ = [
    "build_planning_check_node",
    "build_planning_node",
    "build_execute_node",
    "build_reflect_node",
]
