"""Memory module: long-term facts, core profile blocks and the processing pipeline."""

from .executor import DecisionExecutor, ExecutionReport
from .extractor import MemoryExtractor
from .manager import MemoryManager, PipelineReport
from .models import (
    AddResult,
    AuditAction,
    AuditEntry,
    CoreLabel,
    CoreMemoryBlock,
    Fact,
    MemoryKind,
    QueueItem,
    QueueStatus,
    ScoredFact,
    compute_content_hash,
)
from .queue import DrainReport, ProcessingQueue
from .reconciler import CandidateContext, Reconciler
from .schemas import (
    DecisionAction,
    DecisionResult,
    ExtractedMemory,
    ExtractionResult,
    MemoryDecision,
)
from .search import SimilaritySearch, VectorIndex
from .store import MemoryStore
from .tools import RecallTool, RememberTool

__all__ = [
    "AddResult",
    "AuditAction",
    "AuditEntry",
    "CandidateContext",
    "CoreLabel",
    "CoreMemoryBlock",
    "DecisionAction",
    "DecisionExecutor",
    "DecisionResult",
    "DrainReport",
    "ExecutionReport",
    "ExtractedMemory",
    "ExtractionResult",
    "Fact",
    "MemoryDecision",
    "MemoryExtractor",
    "MemoryKind",
    "MemoryManager",
    "MemoryStore",
    "PipelineReport",
    "ProcessingQueue",
    "QueueItem",
    "QueueStatus",
    "RecallTool",
    "Reconciler",
    "RememberTool",
    "ScoredFact",
    "SimilaritySearch",
    "VectorIndex",
    "compute_content_hash",
]
