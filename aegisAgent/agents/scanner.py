"""Agent scanner - load agent profiles from agents.yaml into an AgentRegistry.

Format::

    agents:
      researcher:
        name: Researcher
        description: Finds and summarizes sources
        system_prompt: You are a careful researcher...
        provider: openai          # optional
        model: gpt-4o-mini        # optional
        tools: [now]              # optional allowlist
        tags: [research]
        enabled: true
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .prompts import DEFAULT_SYSTEM_PROMPT
from .registry import AgentRegistry
from .schema import DEFAULT_AGENT_ID, AgentProfile

LOGGER = logging.getLogger("aegis.agents.scanner")

DEFAULT_AGENTS_CONFIG = Path(__file__).resolve().parent.parent / "config" / "agents.yaml"


def default_profile() -> AgentProfile:
    """The built-in assistant every registry starts with."""
    return AgentProfile(
        id=DEFAULT_AGENT_ID,
        name="Aegis",
        description="General-purpose assistant",
        system_prompt=DEFAULT_SYSTEM_PROMPT,
        tags=["default"],
    )


def parse_profile(agent_id: str, config: Dict[str, Any]) -> AgentProfile:
    """Build a profile from one YAML entry.

    Raises:
        KeyError: ``name`` is missing
    """
    tools = config.get("tools")
    return AgentProfile(
        id=agent_id,
        name=config["name"],
        description=config.get("description", ""),
        system_prompt=config.get("system_prompt") or DEFAULT_SYSTEM_PROMPT,
        provider=config.get("provider"),
        model=config.get("model"),
        tools=list(tools) if tools is not None else None,
        tags=list(config.get("tags") or []),
        enabled=bool(config.get("enabled", True)),
    )


def load_agents_config(config_path: Union[Path, str]) -> Dict[str, Any]:
    """Load agents.yaml.

    Raises:
        FileNotFoundError: file does not exist
        yaml.YAMLError: invalid YAML
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Agent config not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    LOGGER.debug(f"Loaded agent config from {config_path}")
    return config


def scan_agents_from_config(config_path: Optional[Union[Path, str]] = None) -> AgentRegistry:
    """Registry with the default agent plus every profile in agents.yaml.

    A broken entry is logged and skipped; the rest still load.
    """
    registry = AgentRegistry([default_profile()])

    path = Path(config_path) if config_path else DEFAULT_AGENTS_CONFIG
    if not path.exists():
        LOGGER.info(f"No agent config at {path}, using the default agent only")
        return registry

    config = load_agents_config(path)
    for agent_id, agent_config in (config.get("agents") or {}).items():
        try:
            registry.register(parse_profile(agent_id, agent_config or {}))
        except (KeyError, TypeError, ValueError) as e:
            LOGGER.error(f"Failed to register agent '{agent_id}': {e}")

    LOGGER.info(f"Agent scan complete: {len(registry)} registered, {len(registry.list_enabled())} enabled")
    return registry
