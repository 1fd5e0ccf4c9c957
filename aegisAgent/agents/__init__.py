"""Agent profiles, registry and personas."""

from .classifier import ComplexityClassifier
from .planner import Plan, PlanGenerator, parse_plan
from .reflection import ReflectionGate, ReflectionVerdict, parse_verdict
from .registry import AgentRegistry
from .scanner import default_profile, scan_agents_from_config
from .schema import DEFAULT_AGENT_ID, AgentProfile

__all__ = [
    "ComplexityClassifier",
    "Plan",
    "PlanGenerator",
    "parse_plan",
    "ReflectionGate",
    "ReflectionVerdict",
    "parse_verdict",
    "AgentRegistry",
    "default_profile",
    "scan_agents_from_config",
    "DEFAULT_AGENT_ID",
    "AgentProfile",
]
