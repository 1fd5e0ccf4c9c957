"""End-to-end delegation through the assembled application."""

import asyncio

import pytest
from langchain_core.messages import HumanMessage, SystemMessage, ToolMessage

from aegisAgent.agents.registry import AgentRegistry
from aegisAgent.agents.scanner import default_profile
from aegisAgent.agents.schema import AgentProfile
from aegisAgent.config.settings import AgentSettings, ContextSettings, ModelRoutingSettings, Settings
from aegisAgent.delegation.tasks import TaskStatus
from aegisAgent.runtime.app import build_application
from aegisAgent.tools.builtin.delegate_task import get_delegation_service, set_delegation_service

from fakes import FakeProvider, tool_call_message

LEAD_PROMPT = "You are the lead."
RESEARCHER_PROMPT = "You are the researcher."
WRITER_PROMPT = "You are the writer."


def team_responder(system_prompt, messages):
    """Lead delegates research, research delegates writing, writing tries to loop back."""
    last = next(m for m in reversed(messages) if not isinstance(m, SystemMessage))
    if isinstance(last, ToolMessage):
        return {
            LEAD_PROMPT: "I handed the research off.",
            RESEARCHER_PROMPT: "Research notes: three sources found.",
            WRITER_PROMPT: "Draft written from the notes.",
        }[system_prompt]

    if not isinstance(last, HumanMessage):
        return "ok"
    if system_prompt == LEAD_PROMPT:
        return tool_call_message("delegate_task", {
            "title": "Collect sources",
            "agent_id": "researcher",
            "description": "Find three sources on delegation limits",
            "priority": "high",
        })
    if system_prompt == RESEARCHER_PROMPT:
        return tool_call_message("delegate_task", {"title": "Write draft", "agent_id": "writer"})
    if system_prompt == WRITER_PROMPT:
        return tool_call_message("delegate_task", {"title": "Check facts", "agent_id": "researcher"})
    return "ok"


@pytest.fixture
def settings():
    return Settings(
        models=ModelRoutingSettings(provider="team", failover_chain=""),
        agent=AgentSettings(planning_enabled=False, reflection_enabled=False, streaming=False),
        context=ContextSettings(summary_enabled=False),
    )


@pytest.fixture
def team():
    return AgentRegistry([
        AgentProfile(id="aegis", name="Lead", system_prompt=LEAD_PROMPT),
        AgentProfile(id="researcher", name="Researcher", system_prompt=RESEARCHER_PROMPT),
        AgentProfile(id="writer", name="Writer", system_prompt=WRITER_PROMPT),
    ])


@pytest.fixture
def restore_delegation_service():
    previous = get_delegation_service()
    yield
    set_delegation_service(previous)


@pytest.mark.usefixtures("restore_delegation_service")
class TestApplication:

    @pytest.mark.asyncio
    async def test_delegation_chain_runs_in_background(self, settings, team, store):
        provider = FakeProvider(name="team", responder=team_responder)
        app = await build_application(settings, providers={"team": provider}, store=store, agents=team)
        try:
            conversation = app.new_conversation("aegis")

            result = await app.loop_for("aegis").execute("Please get this researched", conversation.id)
            await asyncio.wait_for(app.queue.join(), timeout=5)
        finally:
            await app.shutdown()

        assert result.response == "I handed the research off."

        tasks = {task.title: task for task in app.tasks.list()}
        assert set(tasks) == {"Collect sources", "Write draft"}

        research = tasks["Collect sources"]
        assert research.status is TaskStatus.COMPLETED
        assert research.delegation_depth == 0
        assert research.output == "Research notes: three sources found."

        draft = tasks["Write draft"]
        assert draft.status is TaskStatus.COMPLETED
        assert draft.delegated_from == research.id
        assert draft.delegation_depth == 1

        research_conversation = store.latest_conversation_for_agent("researcher")
        notes = [t.content for t in store.turns(research_conversation.id) if t.role == "system"]
        assert notes == ['✅ Writer completed delegated task "Write draft": Draft written from the notes.']

        writer_conversation = store.latest_conversation_for_agent("writer")
        tool_turn = next(t for t in store.turns(writer_conversation.id) if t.role == "tool")
        assert tool_turn.metadata["success"] is False
        assert "circular delegation" in tool_turn.content
        assert app.queue.failed == []

    @pytest.mark.asyncio
    async def test_defaults_and_shared_loops(self, settings, store):
        provider = FakeProvider(name="only")
        app = await build_application(settings, providers={"only": provider}, store=store, start_workers=False)

        assert app.router.primary == "only"
        assert {"now", "delegate_task"} <= {t.name for t in app.tools.list_tools()}
        assert "aegis" in app.agents
        assert app.loop_for("aegis") is app.loop_for("aegis")
        assert app.new_conversation().title == default_profile().name
        assert get_delegation_service() is app.delegation

        await app.shutdown()

    @pytest.mark.asyncio
    async def test_medium_priority_task_is_announced(self, settings, team, store):
        app = await build_application(
            settings,
            providers={"team": FakeProvider(name="team")},
            store=store,
            agents=team,
            start_workers=False,
        )
        writer_conversation = app.new_conversation("writer")

        creation = app.delegation.create_task("Polish README", assigned_agent_id="writer")

        assert creation.ok and not creation.dispatched
        assert app.queue.pending() == 0
        note = store.turns(writer_conversation.id)[-1]
        assert note.content.startswith("New Task: Polish README")
        assert app.tasks.find_by_id(creation.task.id).status is TaskStatus.PENDING

        await app.shutdown()
