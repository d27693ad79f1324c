"""SQLite storage for facts, core memory blocks, audit trail and queue items."""

import json
import sqlite3
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from ..errors import FactNotFoundError
from .models import (
    AuditAction,
    AuditEntry,
    CoreLabel,
    CoreMemoryBlock,
    Fact,
    MemoryKind,
    QueueItem,
    QueueStatus,
    compute_content_hash,
)

FACT_COLUMNS = (
    "id, owner_id, content, embedding, kind, keywords, content_hash, "
    "valid_from, invalid_from, source_conversation_id, created_at"
)

QUEUE_COLUMNS = "id, owner_id, conversation_id, status, created_at, processed_at"

AUDIT_COLUMNS = (
    "id, owner_id, conversation_id, action, reason, memory_id, "
    "target_memory_id, memory_content, created_at"
)


class MemoryStore:
    """Persistent storage for the memory pipeline using SQLite.

    Facts are append-only history: rows are inserted and later retired by
    setting ``invalid_from``, never deleted and never rewritten. Every
    mutation is a single-row insert or patch.
    """

    def __init__(
        self,
        db_path: Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
            clock: Source of epoch-second timestamps.
        """
        self.db_path = db_path
        self.clock = clock
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        conn = self._get_connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS memories (
                id                      TEXT PRIMARY KEY,
                owner_id                TEXT NOT NULL,
                content                 TEXT NOT NULL,
                embedding               TEXT NOT NULL,
                kind                    TEXT NOT NULL,
                keywords                TEXT NOT NULL DEFAULT '[]',
                content_hash            TEXT,
                valid_from              REAL NOT NULL,
                invalid_from            REAL,
                source_conversation_id  TEXT,
                created_at              REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_memories_owner
                ON memories(owner_id, invalid_from);
            CREATE INDEX IF NOT EXISTS idx_memories_hash
                ON memories(owner_id, content_hash);

            CREATE TABLE IF NOT EXISTS core_memory_blocks (
                owner_id    TEXT NOT NULL,
                label       TEXT NOT NULL,
                content     TEXT NOT NULL DEFAULT '',
                updated_at  REAL NOT NULL,
                PRIMARY KEY (owner_id, label)
            );

            CREATE TABLE IF NOT EXISTS memory_audit (
                id                TEXT PRIMARY KEY,
                owner_id          TEXT NOT NULL,
                conversation_id   TEXT,
                action            TEXT NOT NULL,
                reason            TEXT NOT NULL,
                memory_id         TEXT,
                target_memory_id  TEXT,
                memory_content    TEXT,
                created_at        REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_audit_owner
                ON memory_audit(owner_id, conversation_id);

            CREATE TABLE IF NOT EXISTS memory_queue (
                id               TEXT PRIMARY KEY,
                owner_id         TEXT NOT NULL,
                conversation_id  TEXT NOT NULL,
                status           TEXT NOT NULL,
                created_at       REAL NOT NULL,
                processed_at     REAL
            );
            CREATE INDEX IF NOT EXISTS idx_queue_status
                ON memory_queue(status, created_at);
            CREATE UNIQUE INDEX IF NOT EXISTS idx_queue_one_pending
                ON memory_queue(conversation_id) WHERE status = 'pending';
        """)
        conn.commit()

    # -- Core memory blocks -------------------------------------------------

    def create_owner(self, owner_id: str) -> list[CoreMemoryBlock]:
        """Create the empty core memory blocks for a new owner.

        Existing blocks are left untouched, so this is safe to repeat.
        """
        conn = self._get_connection()
        now = self.clock()
        conn.executemany(
            """
            INSERT OR IGNORE INTO core_memory_blocks (owner_id, label, content, updated_at)
            VALUES (?, ?, '', ?)
            """,
            [(owner_id, label.value, now) for label in CoreLabel],
        )
        conn.commit()
        return self.get_core_blocks(owner_id)

    def get_core_blocks(self, owner_id: str) -> list[CoreMemoryBlock]:
        """Get the owner's core blocks in label declaration order."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT owner_id, label, content, updated_at FROM core_memory_blocks WHERE owner_id = ?",
            (owner_id,),
        )
        blocks = {
            row["label"]: CoreMemoryBlock(
                owner_id=row["owner_id"],
                label=CoreLabel(row["label"]),
                content=row["content"],
                updated_at=row["updated_at"],
            )
            for row in cursor.fetchall()
        }
        return [blocks[label.value] for label in CoreLabel if label.value in blocks]

    def update_core_block(self, owner_id: str, label: CoreLabel, content: str) -> bool:
        """Overwrite one core block.

        Returns:
            True if the block existed and was replaced, False otherwise.
        """
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE core_memory_blocks SET content = ?, updated_at = ? WHERE owner_id = ? AND label = ?",
            (content, self.clock(), owner_id, CoreLabel(label).value),
        )
        conn.commit()
        return cursor.rowcount > 0

    # -- Facts --------------------------------------------------------------

    def insert_fact(
        self,
        owner_id: str,
        content: str,
        embedding: list[float],
        kind: MemoryKind,
        keywords: list[str] | None = None,
        source_conversation_id: str | None = None,
    ) -> Fact:
        """Insert a new active fact.

        Returns:
            The stored fact with its assigned id and timestamps.
        """
        now = self.clock()
        fact = Fact(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            content=content,
            embedding=list(embedding),
            kind=MemoryKind(kind),
            keywords=list(keywords or []),
            content_hash=compute_content_hash(content),
            valid_from=now,
            invalid_from=None,
            source_conversation_id=source_conversation_id,
            created_at=now,
        )
        conn = self._get_connection()
        conn.execute(
            f"INSERT INTO memories ({FACT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                fact.id,
                fact.owner_id,
                fact.content,
                json.dumps(fact.embedding),
                fact.kind.value,
                json.dumps(fact.keywords),
                fact.content_hash,
                fact.valid_from,
                fact.invalid_from,
                fact.source_conversation_id,
                fact.created_at,
            ),
        )
        conn.commit()
        return fact

    def get_fact(self, fact_id: str) -> Fact | None:
        """Point lookup by id, active or not."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {FACT_COLUMNS} FROM memories WHERE id = ?", (fact_id,)
        )
        row = cursor.fetchone()
        return self._row_to_fact(row) if row else None

    def invalidate(self, fact_id: str, owner_id: str | None = None) -> float:
        """Retire a fact by stamping ``invalid_from`` with the current time.

        Only the timestamp is patched. When ``owner_id`` is given, a fact
        belonging to another owner is treated as missing.

        Returns:
            The timestamp written.

        Raises:
            FactNotFoundError: If no matching fact exists.
        """
        now = self.clock()
        conn = self._get_connection()
        if owner_id is None:
            cursor = conn.execute(
                "UPDATE memories SET invalid_from = ? WHERE id = ?", (now, fact_id)
            )
        else:
            cursor = conn.execute(
                "UPDATE memories SET invalid_from = ? WHERE id = ? AND owner_id = ?",
                (now, fact_id, owner_id),
            )
        conn.commit()
        if cursor.rowcount == 0:
            raise FactNotFoundError(fact_id, owner_id)
        return now

    def find_active_by_hash(self, owner_id: str, content_hash: str) -> Fact | None:
        """Find an active fact of this owner with the same normalized hash."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {FACT_COLUMNS} FROM memories
            WHERE owner_id = ? AND content_hash = ? AND invalid_from IS NULL
            LIMIT 1
            """,
            (owner_id, content_hash),
        )
        row = cursor.fetchone()
        return self._row_to_fact(row) if row else None

    def list_facts(self, owner_id: str, include_invalid: bool = False) -> list[Fact]:
        """List the owner's facts, oldest first."""
        conn = self._get_connection()
        query = f"SELECT {FACT_COLUMNS} FROM memories WHERE owner_id = ?"
        if not include_invalid:
            query += " AND invalid_from IS NULL"
        cursor = conn.execute(query + " ORDER BY created_at, rowid", (owner_id,))
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def iter_embeddings(self, owner_id: str) -> list[tuple[str, list[float]]]:
        """All (id, embedding) pairs for an owner, including retired facts."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT id, embedding FROM memories WHERE owner_id = ?", (owner_id,)
        )
        return [(row["id"], json.loads(row["embedding"])) for row in cursor.fetchall()]

    # -- Audit trail --------------------------------------------------------

    def record_audit(
        self,
        owner_id: str,
        action: AuditAction,
        reason: str,
        conversation_id: str | None = None,
        memory_id: str | None = None,
        target_memory_id: str | None = None,
        memory_content: str | None = None,
    ) -> AuditEntry:
        """Append one decision to the audit trail."""
        entry = AuditEntry(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            action=AuditAction(action),
            reason=reason,
            conversation_id=conversation_id,
            memory_id=memory_id,
            target_memory_id=target_memory_id,
            memory_content=memory_content,
            created_at=self.clock(),
        )
        conn = self._get_connection()
        conn.execute(
            f"INSERT INTO memory_audit ({AUDIT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                entry.id,
                entry.owner_id,
                entry.conversation_id,
                entry.action.value,
                entry.reason,
                entry.memory_id,
                entry.target_memory_id,
                entry.memory_content,
                entry.created_at,
            ),
        )
        conn.commit()
        return entry

    def list_audit(
        self, owner_id: str, conversation_id: str | None = None
    ) -> list[AuditEntry]:
        """Audit entries for an owner, optionally for one conversation."""
        conn = self._get_connection()
        query = f"SELECT {AUDIT_COLUMNS} FROM memory_audit WHERE owner_id = ?"
        params: tuple[str, ...] = (owner_id,)
        if conversation_id is not None:
            query += " AND conversation_id = ?"
            params = (owner_id, conversation_id)
        cursor = conn.execute(query + " ORDER BY created_at, rowid", params)
        return [
            AuditEntry(
                id=row["id"],
                owner_id=row["owner_id"],
                action=AuditAction(row["action"]),
                reason=row["reason"],
                conversation_id=row["conversation_id"],
                memory_id=row["memory_id"],
                target_memory_id=row["target_memory_id"],
                memory_content=row["memory_content"],
                created_at=row["created_at"],
            )
            for row in cursor.fetchall()
        ]

    # -- Processing queue ---------------------------------------------------

    def find_pending_item(self, conversation_id: str) -> QueueItem | None:
        """The pending queue item for a conversation, if any."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {QUEUE_COLUMNS} FROM memory_queue WHERE conversation_id = ? AND status = ? LIMIT 1",
            (conversation_id, QueueStatus.PENDING.value),
        )
        row = cursor.fetchone()
        return self._row_to_queue_item(row) if row else None

    def insert_queue_item(self, owner_id: str, conversation_id: str) -> QueueItem | None:
        """Insert a pending item.

        Returns:
            The new item, or None if the conversation already has a pending one.
        """
        item = QueueItem(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            conversation_id=conversation_id,
            status=QueueStatus.PENDING,
            created_at=self.clock(),
        )
        conn = self._get_connection()
        cursor = conn.execute(
            f"INSERT OR IGNORE INTO memory_queue ({QUEUE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
            (
                item.id,
                item.owner_id,
                item.conversation_id,
                item.status.value,
                item.created_at,
                item.processed_at,
            ),
        )
        conn.commit()
        return item if cursor.rowcount > 0 else None

    def list_pending_items(self, limit: int) -> list[QueueItem]:
        """Oldest pending items first, at most ``limit``."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {QUEUE_COLUMNS} FROM memory_queue WHERE status = ? ORDER BY created_at, rowid LIMIT ?",
            (QueueStatus.PENDING.value, limit),
        )
        return [self._row_to_queue_item(row) for row in cursor.fetchall()]

    def claim_queue_item(self, item_id: str) -> bool:
        """Move an item from pending to processing in one conditional update.

        Returns:
            False if the item was no longer pending (another drain got it).
        """
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE memory_queue SET status = ? WHERE id = ? AND status = ?",
            (QueueStatus.PROCESSING.value, item_id, QueueStatus.PENDING.value),
        )
        conn.commit()
        return cursor.rowcount > 0

    def finish_queue_item(self, item_id: str, status: QueueStatus) -> None:
        """Move a processing item to a terminal status."""
        status = QueueStatus(status)
        if status not in (QueueStatus.COMPLETED, QueueStatus.FAILED):
            raise ValueError(f"Not a terminal status: {status.value}")
        conn = self._get_connection()
        conn.execute(
            "UPDATE memory_queue SET status = ?, processed_at = ? WHERE id = ? AND status = ?",
            (status.value, self.clock(), item_id, QueueStatus.PROCESSING.value),
        )
        conn.commit()

    def get_queue_item(self, item_id: str) -> QueueItem | None:
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT {QUEUE_COLUMNS} FROM memory_queue WHERE id = ?", (item_id,)
        )
        row = cursor.fetchone()
        return self._row_to_queue_item(row) if row else None

    def list_queue_items(
        self,
        status: QueueStatus | None = None,
        conversation_id: str | None = None,
    ) -> list[QueueItem]:
        conn = self._get_connection()
        clauses = []
        params: list[str] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(QueueStatus(status).value)
        if conversation_id is not None:
            clauses.append("conversation_id = ?")
            params.append(conversation_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = conn.execute(
            f"SELECT {QUEUE_COLUMNS} FROM memory_queue{where} ORDER BY created_at, rowid",
            params,
        )
        return [self._row_to_queue_item(row) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _row_to_fact(self, row: sqlite3.Row) -> Fact:
        """Convert a database row to a Fact."""
        return Fact(
            id=row["id"],
            owner_id=row["owner_id"],
            content=row["content"],
            embedding=json.loads(row["embedding"]),
            kind=MemoryKind(row["kind"]),
            keywords=json.loads(row["keywords"]),
            content_hash=row["content_hash"],
            valid_from=row["valid_from"],
            invalid_from=row["invalid_from"],
            source_conversation_id=row["source_conversation_id"],
            created_at=row["created_at"],
        )

    def _row_to_queue_item(self, row: sqlite3.Row) -> QueueItem:
        return QueueItem(
            id=row["id"],
            owner_id=row["owner_id"],
            conversation_id=row["conversation_id"],
            status=QueueStatus(row["status"]),
            created_at=row["created_at"],
            processed_at=row["processed_at"],
        )
