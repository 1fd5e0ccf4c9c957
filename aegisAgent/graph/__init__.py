"""Agent loop graph assembly exports."""

from .builder import build_agent_loop_graph
from .state import AgentLoopState

__all__ = ["build_agent_loop_graph", "AgentLoopState"]
