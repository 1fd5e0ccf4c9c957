"""Unit tests for the in-memory and SQLite conversation stores."""

import pytest

from aegisAgent.context.messages import Turn
from aegisAgent.persistence.conversation_store import InMemoryConversationStore, SqliteConversationStore


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryConversationStore()
    return SqliteConversationStore(str(tmp_path / "db" / "conversations.db"))


class TestConversationStore:

    def test_append_and_read_turns_in_order(self, any_store):
        conversation = any_store.create_conversation(title="Chat", agent_id="aegis")

        any_store.append_turn(conversation.id, Turn.user("hello"))
        any_store.append_turn(conversation.id, Turn.assistant(
            "",
            tool_calls=[{"id": "call_1", "name": "echo", "args": {"text": "hi"}}],
        ))
        any_store.append_turn(conversation.id, Turn.tool("echo: hi", "echo", "call_1", metadata={"success": True}))

        turns = any_store.turns(conversation.id)

        assert [t.role for t in turns] == ["user", "assistant", "tool"]
        assert turns[1].tool_calls[0]["name"] == "echo"
        assert turns[2].tool_call_id == "call_1"
        assert turns[2].metadata == {"success": True}

    def test_partial_streamed_turn_round_trips(self, any_store):
        conversation = any_store.create_conversation()
        any_store.append_turn(conversation.id, Turn.assistant("half an ans", is_complete=False, cancelled=True))

        turn = any_store.turns(conversation.id)[0]

        assert turn.is_complete is False
        assert turn.cancelled is True
        assert turn.token_count == 3

    def test_summary(self, any_store):
        conversation = any_store.create_conversation()
        assert any_store.get_summary(conversation.id) is None

        any_store.set_summary(conversation.id, "Key decisions: none", covers=12)

        assert any_store.get_summary(conversation.id) == "Key decisions: none"
        assert any_store.get_conversation(conversation.id).summary_covers == 12

    def test_memories_global_and_scoped(self, any_store):
        first = any_store.create_conversation()
        second = any_store.create_conversation()
        any_store.add_memory("User name is Sam")
        any_store.add_memory("Prefers metric units", conversation_id=first.id)

        assert any_store.memories(first.id) == ["User name is Sam", "Prefers metric units"]
        assert any_store.memories(second.id) == ["User name is Sam"]

    def test_memories_limit_keeps_newest(self, any_store):
        for i in range(5):
            any_store.add_memory(f"fact {i}")

        assert any_store.memories(None, limit=2) == ["fact 3", "fact 4"]

    def test_unknown_conversation(self, any_store):
        assert any_store.get_conversation("missing") is None
        with pytest.raises(KeyError):
            any_store.append_turn("missing", Turn.user("x"))
        with pytest.raises(KeyError):
            any_store.turns("missing")

    def test_latest_conversation_for_agent(self, any_store):
        older = any_store.create_conversation(agent_id="writer")
        newer = any_store.create_conversation(agent_id="writer")
        any_store.create_conversation(agent_id="researcher")
        any_store.append_turn(older.id, Turn.user("bump"))

        assert any_store.latest_conversation_for_agent("writer").id == older.id
        assert newer.id != older.id
        assert any_store.latest_conversation_for_agent("nobody") is None

    def test_explicit_conversation_id(self, any_store):
        conversation = any_store.create_conversation(conversation_id="fixed-id")

        assert any_store.get_conversation("fixed-id").id == conversation.id


class TestTurn:

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            Turn(role="robot", content="beep")

    def test_token_count_defaults_to_estimate(self):
        assert Turn.user("abcdefgh").token_count == 2
