"""Planning persona: turns a request into an ordered step list."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from langchain_core.messages import HumanMessage
from langchain_core.tools import BaseTool

from aegisAgent.context.messages import stringify_content
from aegisAgent.utils.logging_utils import log_prompt

from .prompts import SIMPLE_RESPONSE_MARKER, build_planning_system_prompt

if TYPE_CHECKING:
    from aegisAgent.models.providers import ChatProvider

LOGGER = logging.getLogger("aegis.agents.planner")

MAX_PLAN_STEPS = 5

_STEP_LINE = re.compile(r"^\s*STEP\s+(\d+)\s*[:.)-]\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class Plan:
    """Ordered steps for one request; lives only inside the turn's prompt."""
    source_prompt: str
    text: str
    steps: List[str] = field(default_factory=list)


def parse_plan(source_prompt: str, text: str) -> Optional[Plan]:
    """Parse planner output; ``SIMPLE_RESPONSE`` or empty output means no plan."""
    cleaned = (text or "").strip()
    if not cleaned or cleaned.upper().startswith(SIMPLE_RESPONSE_MARKER):
        return None

    steps = [match.group(2) for match in _STEP_LINE.finditer(cleaned)]
    if not steps:
        # Free-form plan: keep non-empty lines as steps
        steps = [line.strip() for line in cleaned.splitlines() if line.strip()]
    return Plan(source_prompt=source_prompt, text=cleaned, steps=steps[:MAX_PLAN_STEPS])


class PlanGenerator:
    """Invokes the planning persona; fails soft.

    Any provider error, timeout or unusable output yields ``None`` so the agent
    loop falls back to direct execution.
    """

    def __init__(
        self,
        provider: "ChatProvider",
        tools: Sequence[BaseTool] = (),
        timeout: Optional[float] = None,
        model: Optional[str] = None,
    ):
        self.provider = provider
        self.tools = list(tools)
        self.timeout = timeout
        self.model = model

    async def generate(self, prompt: str) -> Optional[Plan]:
        system_prompt = build_planning_system_prompt(self.tools)
        log_prompt(LOGGER, "planning", system_prompt)
        call = self.provider.generate(system_prompt, [HumanMessage(content=prompt)], model=self.model)
        try:
            if self.timeout:
                response = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                response = await call
        except asyncio.TimeoutError:
            LOGGER.warning(f"Plan generation timed out after {self.timeout}s, falling back to direct execution")
            return None
        except Exception as e:
            LOGGER.warning(f"Plan generation failed, falling back to direct execution: {e}")
            return None

        plan = parse_plan(prompt, stringify_content(response.content))
        if plan is None:
            LOGGER.info("Planner returned no plan")
        else:
            LOGGER.info(f"Plan created with {len(plan.steps)} steps")
        return plan
