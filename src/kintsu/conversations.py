"""SQLite storage for conversations and their messages."""

import logging
import sqlite3
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")

AssistantHook = Callable[[str, str], Awaitable[Any]]


@dataclass(frozen=True)
class Conversation:
    """A chat conversation owned by one user."""

    id: str
    owner_id: str
    title: str | None
    created_at: float
    updated_at: float


class ConversationStore:
    """Persistent conversation log.

    When an assistant message is appended, ``on_assistant_message`` is
    awaited with ``(owner_id, conversation_id)``; this is how finished turns
    reach the memory queue. Hook failures are logged and never reach the
    caller that appended the message.
    """

    def __init__(
        self,
        db_path: Path,
        on_assistant_message: AssistantHook | None = None,
    ) -> None:
        self.db_path = db_path
        self.on_assistant_message = on_assistant_message
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the conversation tables if they don't exist."""
        conn = self._get_connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS conversations (
                id          TEXT PRIMARY KEY,
                owner_id    TEXT NOT NULL,
                title       TEXT,
                created_at  REAL NOT NULL,
                updated_at  REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_conversations_owner ON conversations(owner_id);

            CREATE TABLE IF NOT EXISTS messages (
                id               TEXT PRIMARY KEY,
                conversation_id  TEXT NOT NULL,
                role             TEXT NOT NULL,
                content          TEXT NOT NULL,
                created_at       REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_messages_conversation
                ON messages(conversation_id, created_at);
        """)
        conn.commit()

    def create_conversation(self, owner_id: str, title: str | None = None) -> Conversation:
        now = time.time()
        conversation = Conversation(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            title=title,
            created_at=now,
            updated_at=now,
        )
        conn = self._get_connection()
        conn.execute(
            "INSERT INTO conversations (id, owner_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (conversation.id, owner_id, title, now, now),
        )
        conn.commit()
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT id, owner_id, title, created_at, updated_at FROM conversations WHERE id = ?",
            (conversation_id,),
        ).fetchone()
        if row is None:
            return None
        return Conversation(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def add_message(self, conversation_id: str, role: str, content: str) -> str:
        """Append a message and return its id.

        Raises:
            ValueError: If the role is unknown or the conversation doesn't exist.
        """
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")

        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise ValueError(f"Unknown conversation: {conversation_id}")

        now = time.time()
        message_id = uuid.uuid4().hex
        conn = self._get_connection()
        conn.execute(
            "INSERT INTO messages (id, conversation_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)",
            (message_id, conversation_id, role, content, now),
        )
        conn.execute(
            "UPDATE conversations SET updated_at = ? WHERE id = ?", (now, conversation_id)
        )
        conn.commit()

        if role == "assistant" and self.on_assistant_message is not None:
            try:
                await self.on_assistant_message(conversation.owner_id, conversation_id)
            except Exception as e:
                logger.error(f"Could not queue conversation {conversation_id} for memory: {e}")

        return message_id

    def list_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        """All messages of a conversation, oldest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT role, content FROM messages
            WHERE conversation_id = ?
            ORDER BY created_at, rowid
            """,
            (conversation_id,),
        )
        return [{"role": row["role"], "content": row["content"]} for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
