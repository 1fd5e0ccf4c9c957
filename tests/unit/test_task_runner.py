"""Unit tests for background task execution."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from aegisAgent.agents.registry import AgentRegistry
from aegisAgent.agents.schema import AgentProfile
from aegisAgent.delegation.queue import AsyncioTaskQueue
from aegisAgent.delegation.runner import DelegatedTaskRunner
from aegisAgent.delegation.service import current_task_id
from aegisAgent.delegation.tasks import InMemoryTaskRepository, Task, TaskStatus
from aegisAgent.runtime.agent_loop import AgentLoopResult


@pytest.fixture
def agents():
    return AgentRegistry([
        AgentProfile(id="lead", name="Lead"),
        AgentProfile(id="helper", name="Helper"),
    ])


@pytest.fixture
def repository():
    repo = InMemoryTaskRepository()
    repo.create(Task(id="parent", title="Plan launch", assigned_agent_id="lead"))
    repo.create(Task(
        id="child",
        title="Collect metrics",
        description="Last 30 days",
        assigned_agent_id="helper",
        delegated_from="parent",
        delegation_depth=1,
    ))
    return repo


@pytest.fixture
def loop():
    mock = MagicMock()
    mock.execute = AsyncMock(return_value=AgentLoopResult(response="Metrics collected: 42 signups"))
    return mock


@pytest.fixture
def runner(repository, agents, store, loop):
    return DelegatedTaskRunner(repository, agents, store, loop_factory=lambda profile: loop, max_depth=3)


class TestDelegatedTaskRunner:

    @pytest.mark.asyncio
    async def test_completes_task_and_notifies_delegator(self, runner, repository, store, loop):
        lead_conversation = store.create_conversation(title="Lead chat", agent_id="lead")

        result = await runner.run("child")

        task = repository.find_by_id("child")
        assert result.response == "Metrics collected: 42 signups"
        assert task.status is TaskStatus.COMPLETED
        assert task.output == "Metrics collected: 42 signups"
        assert task.completed_at is not None

        prompt = loop.execute.await_args.args[0]
        assert "Title: Collect metrics" in prompt
        assert "Description: Last 30 days" in prompt

        note = store.turns(lead_conversation.id)[-1]
        assert note.role == "system"
        assert note.content == '✅ Helper completed delegated task "Collect metrics": Metrics collected: 42 signups'
        assert note.metadata == {"task_id": "child", "source_task_id": "parent"}

    @pytest.mark.asyncio
    async def test_task_runs_in_its_own_conversation(self, runner, store, loop):
        await runner.run("child")

        conversation_id = loop.execute.await_args.args[1]
        conversation = store.get_conversation(conversation_id)
        assert conversation.agent_id == "helper"
        assert conversation.title == "Task: Collect metrics"

    @pytest.mark.asyncio
    async def test_current_task_set_during_execution(self, runner, loop):
        seen = []

        async def execute(prompt, conversation_id):
            seen.append(current_task_id())
            return AgentLoopResult(response="done")

        loop.execute = AsyncMock(side_effect=execute)

        await runner.run("child")

        assert seen == ["child"]
        assert current_task_id() is None

    @pytest.mark.asyncio
    async def test_long_output_is_shortened_in_notification(self, runner, store, loop):
        lead_conversation = store.create_conversation(agent_id="lead")
        loop.execute.return_value = AgentLoopResult(response="x" * 2000)

        await runner.run("child")

        note = store.turns(lead_conversation.id)[-1]
        assert note.content.endswith("...")
        assert len(note.content) < 600

    @pytest.mark.asyncio
    async def test_claimed_task_is_skipped(self, runner, repository, loop):
        repository.claim("child")

        assert await runner.run("child") is None
        loop.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_and_unassigned_tasks_are_skipped(self, runner, repository, loop):
        repository.create(Task(id="loose", title="Nobody's"))

        assert await runner.run("missing") is None
        assert await runner.run("loose") is None
        loop.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_task_beyond_max_depth_is_cancelled(self, repository, agents, store, loop):
        runner = DelegatedTaskRunner(repository, agents, store, loop_factory=lambda p: loop, max_depth=0)

        assert await runner.run("child") is None

        task = repository.find_by_id("child")
        assert task.status is TaskStatus.CANCELLED
        assert "delegation depth limit (0) exceeded" in task.output
        loop.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_returns_task_to_pending(self, runner, repository, loop):
        loop.execute.side_effect = RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await runner.run("child")

        assert repository.find_by_id("child").status is TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_root_task_has_no_delegator_to_notify(self, runner, repository, store):
        lead_conversation = store.create_conversation(agent_id="lead")

        await runner.run("parent")

        assert repository.find_by_id("parent").status is TaskStatus.COMPLETED
        assert store.turns(lead_conversation.id) == []


class TestAsyncioTaskQueue:

    @pytest.mark.asyncio
    async def test_runs_enqueued_tasks(self):
        handled = []

        async def handler(task_id):
            handled.append(task_id)

        queue = AsyncioTaskQueue(handler, workers=2)
        await queue.start()
        queue.enqueue("a")
        queue.enqueue("b")
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert sorted(handled) == ["a", "b"]
        assert queue.failed == []
        assert not queue.running

    @pytest.mark.asyncio
    async def test_failed_task_is_retried(self):
        attempts = []

        async def handler(task_id):
            attempts.append(task_id)
            if len(attempts) == 1:
                raise RuntimeError("transient")

        queue = AsyncioTaskQueue(handler, workers=1, max_attempts=2)
        await queue.start()
        queue.enqueue("a")
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert attempts == ["a", "a"]
        assert queue.failed == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        handler = AsyncMock(side_effect=RuntimeError("always"))

        queue = AsyncioTaskQueue(handler, workers=1, max_attempts=3)
        await queue.start()
        queue.enqueue("a")
        await asyncio.wait_for(queue.join(), timeout=2)
        await queue.stop()

        assert handler.await_count == 3
        assert queue.failed == ["a"]

    @pytest.mark.asyncio
    async def test_enqueue_before_start_waits(self):
        handler = AsyncMock()
        queue = AsyncioTaskQueue(handler)

        queue.enqueue("a")

        assert queue.pending() == 1
        handler.assert_not_awaited()

    def test_needs_a_worker(self):
        with pytest.raises(ValueError):
            AsyncioTaskQueue(AsyncMock(), workers=0)
