"""Conversation storage: turns, summaries and memories."""

from __future__ import annotations

import json
import os
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from aegisAgent.context.messages import Turn


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Conversation:
    id: str
    title: str = ""
    agent_id: Optional[str] = None
    summary: Optional[str] = None
    summary_covers: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


class ConversationStore(Protocol):
    """Storage contract used by the orchestrator and the delegation runner."""

    def create_conversation(
        self,
        title: str = "",
        agent_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        ...

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        ...

    def append_turn(self, conversation_id: str, turn: Turn) -> Turn:
        ...

    def turns(self, conversation_id: str) -> List[Turn]:
        ...

    def get_summary(self, conversation_id: str) -> Optional[str]:
        ...

    def set_summary(self, conversation_id: str, summary: str, covers: int = 0) -> None:
        ...

    def memories(self, conversation_id: Optional[str] = None, limit: int = 20) -> List[str]:
        ...

    def add_memory(self, content: str, conversation_id: Optional[str] = None) -> None:
        ...

    def latest_conversation_for_agent(self, agent_id: str) -> Optional[Conversation]:
        ...


class InMemoryConversationStore:
    """Process-local store, used by tests and the default CLI session."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._turns: Dict[str, List[Turn]] = {}
        self._memories: List[tuple] = []  # (conversation_id | None, content)
        self._lock = threading.Lock()

    def create_conversation(
        self,
        title: str = "",
        agent_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        conversation = Conversation(id=conversation_id or uuid.uuid4().hex, title=title, agent_id=agent_id)
        with self._lock:
            self._conversations[conversation.id] = conversation
            self._turns.setdefault(conversation.id, [])
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._lock:
            return self._conversations.get(conversation_id)

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise KeyError(f"Unknown conversation: {conversation_id}")
        return conversation

    def append_turn(self, conversation_id: str, turn: Turn) -> Turn:
        with self._lock:
            conversation = self._require(conversation_id)
            self._turns[conversation_id].append(turn)
            conversation.updated_at = _now()
        return turn

    def turns(self, conversation_id: str) -> List[Turn]:
        with self._lock:
            self._require(conversation_id)
            return list(self._turns[conversation_id])

    def get_summary(self, conversation_id: str) -> Optional[str]:
        with self._lock:
            return self._require(conversation_id).summary

    def set_summary(self, conversation_id: str, summary: str, covers: int = 0) -> None:
        with self._lock:
            conversation = self._require(conversation_id)
            conversation.summary = summary
            conversation.summary_covers = covers
            conversation.updated_at = _now()

    def memories(self, conversation_id: Optional[str] = None, limit: int = 20) -> List[str]:
        with self._lock:
            matching = [
                content for owner, content in self._memories
                if owner is None or owner == conversation_id
            ]
        return matching[-limit:]

    def add_memory(self, content: str, conversation_id: Optional[str] = None) -> None:
        with self._lock:
            self._memories.append((conversation_id, content))

    def latest_conversation_for_agent(self, agent_id: str) -> Optional[Conversation]:
        with self._lock:
            candidates = [c for c in self._conversations.values() if c.agent_id == agent_id]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.updated_at)


class SqliteConversationStore:
    """SQLite store for conversations, turns and memories."""

    def __init__(self, db_path: str = "data/conversations.db"):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file
        """
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        conn = self._connect()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    agent_id TEXT,
                    summary TEXT,
                    summary_covers INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS turns (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL REFERENCES conversations(id),
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    tool_name TEXT,
                    tool_call_id TEXT,
                    tool_calls_json TEXT NOT NULL DEFAULT '[]',
                    token_count INTEGER NOT NULL DEFAULT 0,
                    is_complete INTEGER NOT NULL DEFAULT 1,
                    cancelled INTEGER NOT NULL DEFAULT 0,
                    metadata_json TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_turns_conversation ON turns(conversation_id, id);
                CREATE TABLE IF NOT EXISTS memories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
            """)
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            title=row["title"],
            agent_id=row["agent_id"],
            summary=row["summary"],
            summary_covers=row["summary_covers"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> Turn:
        return Turn(
            role=row["role"],
            content=row["content"],
            tool_name=row["tool_name"],
            tool_call_id=row["tool_call_id"],
            tool_calls=json.loads(row["tool_calls_json"]),
            token_count=row["token_count"],
            is_complete=bool(row["is_complete"]),
            cancelled=bool(row["cancelled"]),
            metadata=json.loads(row["metadata_json"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def create_conversation(
        self,
        title: str = "",
        agent_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> Conversation:
        conversation = Conversation(id=conversation_id or uuid.uuid4().hex, title=title, agent_id=agent_id)
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO conversations (id, title, agent_id, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    conversation.id,
                    title,
                    agent_id,
                    conversation.created_at.isoformat(),
                    conversation.updated_at.isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
            return self._row_to_conversation(row) if row else None
        finally:
            conn.close()

    def _require(self, conn: sqlite3.Connection, conversation_id: str) -> None:
        row = conn.execute("SELECT 1 FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
        if row is None:
            raise KeyError(f"Unknown conversation: {conversation_id}")

    def append_turn(self, conversation_id: str, turn: Turn) -> Turn:
        conn = self._connect()
        try:
            self._require(conn, conversation_id)
            conn.execute(
                """INSERT INTO turns (conversation_id, role, content, tool_name, tool_call_id,
                                      tool_calls_json, token_count, is_complete, cancelled,
                                      metadata_json, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    conversation_id,
                    turn.role,
                    turn.content,
                    turn.tool_name,
                    turn.tool_call_id,
                    json.dumps(turn.tool_calls, ensure_ascii=False, default=str),
                    turn.token_count,
                    int(turn.is_complete),
                    int(turn.cancelled),
                    json.dumps(turn.metadata, ensure_ascii=False, default=str),
                    turn.created_at.isoformat(),
                ),
            )
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (_now().isoformat(), conversation_id),
            )
            conn.commit()
        finally:
            conn.close()
        return turn

    def turns(self, conversation_id: str) -> List[Turn]:
        conn = self._connect()
        try:
            self._require(conn, conversation_id)
            rows = conn.execute(
                "SELECT * FROM turns WHERE conversation_id = ? ORDER BY id",
                (conversation_id,),
            ).fetchall()
            return [self._row_to_turn(row) for row in rows]
        finally:
            conn.close()

    def get_summary(self, conversation_id: str) -> Optional[str]:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise KeyError(f"Unknown conversation: {conversation_id}")
        return conversation.summary

    def set_summary(self, conversation_id: str, summary: str, covers: int = 0) -> None:
        conn = self._connect()
        try:
            self._require(conn, conversation_id)
            conn.execute(
                "UPDATE conversations SET summary = ?, summary_covers = ?, updated_at = ? WHERE id = ?",
                (summary, covers, _now().isoformat(), conversation_id),
            )
            conn.commit()
        finally:
            conn.close()

    def memories(self, conversation_id: Optional[str] = None, limit: int = 20) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT content FROM memories
                   WHERE conversation_id IS NULL OR conversation_id = ?
                   ORDER BY id DESC LIMIT ?""",
                (conversation_id, limit),
            ).fetchall()
            return [row["content"] for row in reversed(rows)]
        finally:
            conn.close()

    def add_memory(self, content: str, conversation_id: Optional[str] = None) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO memories (conversation_id, content, created_at) VALUES (?, ?, ?)",
                (conversation_id, content, _now().isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def latest_conversation_for_agent(self, agent_id: str) -> Optional[Conversation]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM conversations WHERE agent_id = ? ORDER BY updated_at DESC LIMIT 1",
                (agent_id,),
            ).fetchone()
            return self._row_to_conversation(row) if row else None
        finally:
            conn.close()
