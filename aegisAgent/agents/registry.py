"""Agent registry - lookup of agent profiles by id."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .schema import AgentProfile

LOGGER = logging.getLogger("aegis.agents.registry")


class AgentRegistry:
    """Holds agent profiles.

    Query patterns:
    - get(agent_id): by id, KeyError when unknown
    - list_enabled(): profiles that accept work
    - query_by_tag(tag): profiles carrying a tag
    """

    def __init__(self, profiles: Optional[Iterable[AgentProfile]] = None):
        self._profiles: Dict[str, AgentProfile] = {}
        self._disabled: set = set()
        for profile in profiles or []:
            self.register(profile)

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    def register(self, profile: AgentProfile) -> None:
        self._profiles[profile.id] = profile
        if not profile.enabled:
            self._disabled.add(profile.id)
        else:
            self._disabled.discard(profile.id)
        LOGGER.debug(f"Registered agent: {profile.id} ({profile.name})")

    def get(self, agent_id: str) -> AgentProfile:
        if agent_id not in self._profiles:
            raise KeyError(f"Unknown agent: {agent_id}")
        return self._profiles[agent_id]

    def get_optional(self, agent_id: str) -> Optional[AgentProfile]:
        return self._profiles.get(agent_id)

    def is_enabled(self, agent_id: str) -> bool:
        return agent_id in self._profiles and agent_id not in self._disabled

    def enable(self, agent_id: str) -> AgentProfile:
        profile = self.get(agent_id)
        self._disabled.discard(agent_id)
        LOGGER.info(f"Enabled agent: {agent_id}")
        return profile

    def disable(self, agent_id: str) -> None:
        self.get(agent_id)
        self._disabled.add(agent_id)
        LOGGER.info(f"Disabled agent: {agent_id}")

    def list_all(self) -> List[AgentProfile]:
        return list(self._profiles.values())

    def list_enabled(self) -> List[AgentProfile]:
        return [p for p in self._profiles.values() if p.id not in self._disabled]

    def query_by_tag(self, tag: str) -> List[AgentProfile]:
        return [p for p in self.list_enabled() if p.has_tag(tag)]
