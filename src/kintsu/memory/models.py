"""Data models for the memory system."""

import hashlib
from dataclasses import dataclass, field
from enum import Enum


class MemoryKind(str, Enum):
    """How durable or general a fact is."""

    EPISODIC = "episodic"
    SEMANTIC = "semantic"
    PROCEDURAL = "procedural"


class CoreLabel(str, Enum):
    """The fixed set of always-loaded profile blocks per owner."""

    USER_PROFILE = "user_profile"
    PARTNER_INFO = "partner_info"
    RELATIONSHIP_CONTEXT = "relationship_context"
    PREFERENCES = "preferences"


class QueueStatus(str, Enum):
    """Lifecycle of a queue item. Transitions only move forward."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""

    ADD = "ADD"
    UPDATE = "UPDATE"
    INVALIDATE = "INVALIDATE"
    NOOP = "NOOP"
    HASH_DUPLICATE = "HASH_DUPLICATE"


def compute_content_hash(content: str) -> str:
    """SHA-256 hex digest of the trimmed, lowercased content."""
    normalized = content.strip().lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Fact:
    """A long-term fact stored about one owner.

    Facts are never deleted. Setting ``invalid_from`` retires a fact; its
    content and embedding stay as history.

    Attributes:
        id: Opaque identifier, assigned on insert.
        owner_id: The user this fact belongs to.
        content: Natural-language statement of the fact.
        embedding: Vector derived from ``content`` when it was written.
        kind: Episodic, semantic or procedural.
        keywords: Advisory tags, not used for matching.
        content_hash: Normalized hash of ``content`` for exact-duplicate checks.
        valid_from: Epoch seconds when the fact became active.
        invalid_from: Epoch seconds when it was superseded, None while active.
        source_conversation_id: Conversation the fact was extracted from.
        created_at: Epoch seconds of insertion.
    """

    id: str
    owner_id: str
    content: str
    embedding: list[float] = field(repr=False)
    kind: MemoryKind
    keywords: list[str] = field(default_factory=list)
    content_hash: str | None = None
    valid_from: float = 0.0
    invalid_from: float | None = None
    source_conversation_id: str | None = None
    created_at: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.invalid_from is None


@dataclass(frozen=True)
class ScoredFact:
    """A fact paired with its similarity to a query vector."""

    fact: Fact
    score: float


@dataclass(frozen=True)
class CoreMemoryBlock:
    """One mutable profile slot, overwritten wholesale on update."""

    owner_id: str
    label: CoreLabel
    content: str = ""
    updated_at: float = 0.0


@dataclass(frozen=True)
class QueueItem:
    """A pending batch-extraction job for one conversation."""

    id: str
    owner_id: str
    conversation_id: str
    status: QueueStatus
    created_at: float
    processed_at: float | None = None


@dataclass(frozen=True)
class AuditEntry:
    """One executed reconciliation decision."""

    id: str
    owner_id: str
    action: AuditAction
    reason: str
    conversation_id: str | None = None
    memory_id: str | None = None
    target_memory_id: str | None = None
    memory_content: str | None = None
    created_at: float = 0.0


@dataclass(frozen=True)
class AddResult:
    """Outcome of a direct, tool-initiated insert."""

    success: bool
    id: str | None = None
    reason: str | None = None
