"""Agent profile schema.

An agent profile is the persona an AgentLoop runs as: its system prompt, the
provider/model it prefers and the tools it may call. Delegated tasks are
assigned to a profile id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_AGENT_ID = "aegis"


@dataclass(frozen=True)
class AgentProfile:
    """Agent persona metadata.

    Attributes:
        id: Unique agent id (tasks are assigned by id)
        name: Display name
        description: Short summary shown to other agents when delegating
        system_prompt: Persona prompt prepended to every generation
        provider: Preferred provider name (None = router primary)
        model: Preferred model id (None = provider default)
        tools: Tool allowlist (None = every registered tool)
        tags: Free-form labels
        enabled: Whether the agent accepts work
    """

    id: str
    name: str
    description: str = ""
    system_prompt: str = ""
    provider: Optional[str] = None
    model: Optional[str] = None
    tools: Optional[List[str]] = None
    tags: List[str] = field(default_factory=list)
    enabled: bool = True

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags
