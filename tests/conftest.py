"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import sys
from pathlib import Path

import pytest

# Ensure project root (for aegisAgent) and tests dir (for fakes) are importable
project_root = Path(__file__).parent.parent
for path in (project_root, Path(__file__).parent):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from aegisAgent.agents.schema import AgentProfile  # noqa: E402
from aegisAgent.config.settings import AgentSettings, ContextSettings  # noqa: E402
from aegisAgent.context.manager import ContextWindowManager  # noqa: E402
from aegisAgent.hitl.audit import AuditLogger  # noqa: E402
from aegisAgent.hitl.permissions import PermissionManager  # noqa: E402
from aegisAgent.models.router import ProviderRouter  # noqa: E402
from aegisAgent.persistence.conversation_store import InMemoryConversationStore  # noqa: E402
from aegisAgent.runtime.orchestrator import GenerationOrchestrator  # noqa: E402
from aegisAgent.tools.invoker import ToolInvoker  # noqa: E402
from aegisAgent.tools.registry import ToolMeta, ToolRegistry  # noqa: E402

from fakes import FakeProvider, echo, explode  # noqa: E402


@pytest.fixture
def context_settings():
    return ContextSettings(summary_enabled=False)


@pytest.fixture
def agent_settings():
    return AgentSettings(
        planning_enabled=True,
        reflection_enabled=True,
        max_reflection_retries=2,
        planning_timeout=5.0,
        streaming=False,
    )


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def conversation(store):
    return store.create_conversation(title="test", agent_id="aegis")


@pytest.fixture
def tool_registry():
    registry = ToolRegistry()
    registry.register_tool(echo, ToolMeta(name="echo", risk="low"))
    registry.register_tool(explode, ToolMeta(name="explode", risk="low"))
    return registry


@pytest.fixture
def permissions():
    return PermissionManager(rules={})


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def invoker(tool_registry, permissions, audit):
    return ToolInvoker(tool_registry, permissions, audit=audit)


@pytest.fixture
def context_manager(context_settings):
    return ContextWindowManager(context_settings)


@pytest.fixture
def make_orchestrator(context_manager, invoker, store):
    """Factory: orchestrator over a router built from the given providers."""

    def factory(*providers: FakeProvider, profile: AgentProfile = None, max_steps: int = 10):
        providers = providers or (FakeProvider(),)
        router = ProviderRouter({p.name: p for p in providers})
        return GenerationOrchestrator(
            router=router,
            context=context_manager,
            invoker=invoker,
            store=store,
            profile=profile,
            max_steps=max_steps,
        )

    return factory
