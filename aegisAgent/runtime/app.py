"""Application assembly - wires settings, providers, tools, stores and agents."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from langchain_core.tools import BaseTool

from aegisAgent.agents.registry import AgentRegistry
from aegisAgent.agents.scanner import scan_agents_from_config
from aegisAgent.agents.schema import DEFAULT_AGENT_ID, AgentProfile
from aegisAgent.config.settings import Settings, get_settings
from aegisAgent.context.manager import ContextWindowManager
from aegisAgent.context.summarizer import ConversationSummarizer
from aegisAgent.delegation.queue import AsyncioTaskQueue
from aegisAgent.delegation.runner import DelegatedTaskRunner
from aegisAgent.delegation.service import DelegationService
from aegisAgent.delegation.tasks import InMemoryTaskRepository, TaskRepository
from aegisAgent.delegation.tracker import DelegationTracker
from aegisAgent.hitl.audit import AuditLogger
from aegisAgent.hitl.permissions import PermissionManager
from aegisAgent.models.providers import ChatProvider, build_providers
from aegisAgent.models.router import ProviderRouter, RateLimiter
from aegisAgent.persistence.conversation_store import (
    Conversation,
    ConversationStore,
    InMemoryConversationStore,
    SqliteConversationStore,
)
from aegisAgent.streaming.orchestrator import StreamingOrchestrator
from aegisAgent.streaming.session import StreamSessionRegistry
from aegisAgent.tools.builtin import builtin_tools, set_delegation_service
from aegisAgent.tools.invoker import ApprovalResolver, ToolInvoker
from aegisAgent.tools.registry import ToolMeta, ToolRegistry

from .agent_loop import AgentLoop
from .orchestrator import GenerationOrchestrator

LOGGER = logging.getLogger("aegis.runtime.app")

DEFAULT_PERMISSION_RULES = Path(__file__).resolve().parent.parent / "config" / "permission_rules.yaml"

ToolSpec = Union[BaseTool, Tuple[BaseTool, ToolMeta]]


@dataclass
class AegisApplication:
    """Every long-lived component of a running engine."""

    settings: Settings
    router: ProviderRouter
    store: ConversationStore
    tools: ToolRegistry
    permissions: PermissionManager
    audit: AuditLogger
    invoker: ToolInvoker
    context: ContextWindowManager
    agents: AgentRegistry
    tasks: TaskRepository
    delegation: DelegationService
    queue: AsyncioTaskQueue
    streams: StreamSessionRegistry = field(default_factory=StreamSessionRegistry)
    _loops: Dict[str, AgentLoop] = field(default_factory=dict)

    def orchestrator_for(self, profile: AgentProfile) -> GenerationOrchestrator:
        return GenerationOrchestrator(
            router=self.router,
            context=self.context,
            invoker=self.invoker,
            store=self.store,
            profile=profile,
            max_steps=self.settings.agent.max_steps,
        )

    def create_loop(self, profile: AgentProfile) -> AgentLoop:
        """A fresh loop for ``profile`` (no listeners attached)."""
        orchestrator = self.orchestrator_for(profile)
        return AgentLoop(
            orchestrator,
            self.settings.agent,
            streamer=StreamingOrchestrator(orchestrator, self.streams),
        )

    def loop_for(self, agent_id: str = DEFAULT_AGENT_ID) -> AgentLoop:
        """The shared interactive loop of an agent."""
        if agent_id not in self._loops:
            self._loops[agent_id] = self.create_loop(self.agents.get(agent_id))
        return self._loops[agent_id]

    def new_conversation(self, agent_id: str = DEFAULT_AGENT_ID, title: str = "") -> Conversation:
        profile = self.agents.get(agent_id)
        return self.store.create_conversation(title=title or profile.name, agent_id=profile.id)

    async def shutdown(self) -> None:
        await self.queue.stop()
        LOGGER.info("Application shut down")


def _register_tools(registry: ToolRegistry, tools: Iterable[ToolSpec]) -> None:
    for spec in tools:
        if isinstance(spec, tuple):
            tool, meta = spec
            registry.register_tool(tool, meta)
        else:
            registry.register_tool(spec)
        LOGGER.debug(f"Registered tool: {registry.list_tools()[-1].name}")


def _build_store(settings: Settings) -> ConversationStore:
    db_path = settings.observability.conversation_db_path
    if db_path:
        LOGGER.info(f"Conversation persistence enabled (SQLite): {db_path}")
        return SqliteConversationStore(db_path)
    return InMemoryConversationStore()


def _build_router(settings: Settings, providers: Mapping[str, ChatProvider]) -> ProviderRouter:
    primary = settings.models.provider if settings.models.provider in providers else None
    chain = [name for name in settings.models.failover_providers() if name in providers]
    return ProviderRouter(
        providers,
        primary=primary,
        failover_chain=chain,
        rate_limiter=RateLimiter(
            window_seconds=settings.agent.rate_limit_window,
            max_requests=settings.agent.rate_limit_max_requests,
        ),
    )


async def build_application(
    settings: Optional[Settings] = None,
    *,
    providers: Optional[Mapping[str, ChatProvider]] = None,
    store: Optional[ConversationStore] = None,
    tools: Optional[Iterable[ToolSpec]] = None,
    agents: Optional[AgentRegistry] = None,
    approval_resolver: Optional[ApprovalResolver] = None,
    start_workers: bool = True,
) -> AegisApplication:
    """Build the engine.

    Args:
        settings: Settings (default: ``get_settings()``)
        providers: Chat providers by name (default: ChatOpenAI from settings)
        store: Conversation store (default: SQLite when configured, else memory)
        tools: Tools or ``(tool, meta)`` pairs (default: built-in tools)
        agents: Agent registry (default: agents.yaml plus the default agent)
        approval_resolver: Callback resolving NeedsApproval decisions
        start_workers: Start the background task workers (needs a running loop)
    """
    settings = settings or get_settings()

    providers = providers if providers is not None else build_providers(settings.models, settings.context)
    router = _build_router(settings, providers)
    LOGGER.info(f"Provider router ready: primary={router.primary}, chain={router.failover_chain}")

    store = store if store is not None else _build_store(settings)

    tool_registry = ToolRegistry()
    _register_tools(tool_registry, tools if tools is not None else builtin_tools())
    LOGGER.info(f"Tools registered: {[t.name for t in tool_registry.list_tools()]}")

    rules_path = settings.security.permission_rules_path or DEFAULT_PERMISSION_RULES
    permissions = PermissionManager(config_path=Path(rules_path), auto_allow_read=settings.security.auto_allow_read)
    audit = AuditLogger()
    invoker = ToolInvoker(
        tool_registry,
        permissions,
        audit=audit,
        approval_resolver=approval_resolver,
        approval_timeout=settings.security.approval_timeout,
    )

    summarizer = None
    if settings.context.summary_enabled:
        summarizer = ConversationSummarizer(
            router,
            summarize_after=settings.context.summarize_after_dropped,
            model=settings.models.summary_model,
        )
    context = ContextWindowManager(settings.context, summarizer=summarizer)

    agent_registry = agents if agents is not None else scan_agents_from_config(settings.agent.agents_config_path)

    tasks = InMemoryTaskRepository()
    tracker = DelegationTracker.from_settings(settings.delegation)

    # The runner needs the application to build loops; bind it after assembly
    app_ref: Dict[str, AegisApplication] = {}

    def loop_factory(profile: AgentProfile) -> AgentLoop:
        return app_ref["app"].create_loop(profile)

    runner = DelegatedTaskRunner(
        tasks,
        agent_registry,
        store,
        loop_factory,
        max_depth=settings.delegation.max_depth,
    )
    queue = AsyncioTaskQueue(
        runner.run,
        workers=settings.delegation.workers,
        max_attempts=settings.delegation.max_attempts,
    )
    delegation = DelegationService(
        tasks,
        tracker,
        agent_registry,
        store,
        queue=queue,
        auto_dispatch_priorities=settings.delegation.auto_dispatch_priorities,
    )
    set_delegation_service(delegation)

    app = AegisApplication(
        settings=settings,
        router=router,
        store=store,
        tools=tool_registry,
        permissions=permissions,
        audit=audit,
        invoker=invoker,
        context=context,
        agents=agent_registry,
        tasks=tasks,
        delegation=delegation,
        queue=queue,
    )
    app_ref["app"] = app

    if start_workers:
        await queue.start()

    LOGGER.info(f"Application ready: {len(agent_registry)} agent(s), {len(tool_registry)} tool(s)")
    return app
