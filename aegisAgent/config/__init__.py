"""Configuration exports."""

from .settings import (
    AgentSettings,
    ContextSettings,
    DelegationSettings,
    ModelRoutingSettings,
    ObservabilitySettings,
    SecuritySettings,
    Settings,
    get_settings,
)

__all__ = [
    "AgentSettings",
    "ContextSettings",
    "DelegationSettings",
    "ModelRoutingSettings",
    "ObservabilitySettings",
    "SecuritySettings",
    "Settings",
    "get_settings",
]
