"""Memory manager for orchestrating the extraction pipeline and retrieval."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..llm import EmbeddingGateway, LLMGateway
from .executor import DecisionExecutor, ExecutionReport
from .extractor import MemoryExtractor
from .models import AddResult, AuditAction, CoreLabel, MemoryKind, ScoredFact, compute_content_hash
from .reconciler import Reconciler
from .search import SimilaritySearch
from .store import MemoryStore

if TYPE_CHECKING:
    from ..logging import JSONLLogger
    from .schemas import MemoryDecision

logger = logging.getLogger(__name__)


@dataclass
class PipelineReport:
    """What one run of extract, reconcile and execute did."""

    extracted: int = 0
    core_updates: list[CoreLabel] = field(default_factory=list)
    decisions: list[MemoryDecision] = field(default_factory=list)
    execution: ExecutionReport = field(default_factory=ExecutionReport)
    extraction_failed: bool = False


class MemoryManager:
    """Orchestrates memory operations: extraction, retrieval and direct inserts.

    This is the main interface for the memory system, wiring the store,
    the gateways and the three pipeline stages together.
    """

    def __init__(
        self,
        store: MemoryStore,
        llm: LLMGateway,
        embeddings: EmbeddingGateway,
        *,
        search: SimilaritySearch | None = None,
        max_messages: int = 20,
        similar_limit: int = 5,
        search_limit: int = 10,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: The MemoryStore for persistence.
            llm: Gateway for extraction and decision calls.
            embeddings: Gateway for content embeddings.
            search: Similarity search; built over ``store`` if omitted.
            max_messages: Extraction window size.
            similar_limit: Neighbours gathered per candidate.
            search_limit: Default result count for ad-hoc search.
            event_logger: Optional JSONL event log.
        """
        self.store = store
        self.embeddings = embeddings
        self.search_engine = search or SimilaritySearch(store)
        self.search_limit = search_limit
        self.event_logger = event_logger
        self.extractor = MemoryExtractor(llm, max_messages=max_messages)
        self.reconciler = Reconciler(
            llm, embeddings, self.search_engine, similar_limit=similar_limit
        )
        self.executor = DecisionExecutor(store, embeddings, event_logger=event_logger)

    async def process_conversation(
        self,
        owner_id: str,
        messages: list[dict[str, Any]],
        conversation_id: str | None = None,
    ) -> PipelineReport:
        """Run extraction, reconciliation and execution for one conversation.

        Extraction and decision failures are absorbed by their stages, so
        this only raises for store or gateway errors outside those
        boundaries.
        """
        start = time.time()
        report = PipelineReport()

        core_blocks = self.store.get_core_blocks(owner_id)
        extraction = await self.extractor.extract(messages, core_blocks)

        if extraction is None:
            report.extraction_failed = True
            if self.event_logger:
                self.event_logger.log(
                    "extraction_failed", owner_id=owner_id, conversation_id=conversation_id
                )
            return report

        if extraction.is_empty:
            return report

        for label, content in extraction.valid_core_updates():
            if self.store.update_core_block(owner_id, label, content):
                report.core_updates.append(label)
            else:
                logger.warning(f"Core memory block {label.value} missing for owner {owner_id}")

        report.extracted = len(extraction.memories)
        if not extraction.memories:
            return report

        reconciliation = await self.reconciler.reconcile(owner_id, extraction.memories)
        if not reconciliation.contexts:
            return report

        report.decisions = reconciliation.decisions
        report.execution = await self.executor.execute(
            owner_id,
            reconciliation.decisions,
            reconciliation.contexts,
            conversation_id=conversation_id,
        )

        logger.info(
            f"Memory processing complete for user {owner_id}: "
            f"{report.extracted} extracted, {len(report.decisions)} decisions executed"
        )
        if self.event_logger:
            self.event_logger.log_pipeline_complete(
                owner_id=owner_id,
                conversation_id=conversation_id,
                extracted=report.extracted,
                decisions=len(report.decisions),
                duration_ms=(time.time() - start) * 1000,
            )
        return report

    async def search(
        self,
        owner_id: str,
        query_vector: list[float],
        limit: int | None = None,
    ) -> list[ScoredFact]:
        """Active facts nearest to a query vector."""
        return await self.search_engine.search(
            owner_id, query_vector, limit=self.search_limit if limit is None else limit
        )

    async def recall(self, owner_id: str, query: str, limit: int = 5) -> list[ScoredFact]:
        """Embed a text query and search with it."""
        vector = await self.embeddings.embed(query)
        return await self.search(owner_id, vector, limit=limit)

    async def add_from_tool(
        self,
        owner_id: str,
        content: str,
        kind: MemoryKind | str = MemoryKind.SEMANTIC,
        keywords: list[str] | None = None,
    ) -> AddResult:
        """Insert one fact directly, bypassing reconciliation.

        An active fact with the same normalized content is reported as a
        duplicate instead of being stored twice.
        """
        content = content.strip()
        if not content:
            return AddResult(success=False, reason="content is required")

        try:
            kind = MemoryKind(kind)
        except ValueError:
            return AddResult(success=False, reason=f"unknown kind: {kind}")

        duplicate = self.store.find_active_by_hash(owner_id, compute_content_hash(content))
        if duplicate is not None:
            self.store.record_audit(
                owner_id,
                AuditAction.HASH_DUPLICATE,
                "Explicit memory already stored",
                target_memory_id=duplicate.id,
                memory_content=content,
            )
            return AddResult(success=False, id=duplicate.id, reason="duplicate")

        try:
            embedding = await self.embeddings.embed(content)
        except Exception as e:
            logger.warning(f"Could not embed explicit memory: {e}")
            return AddResult(success=False, reason=str(e))

        fact = self.store.insert_fact(owner_id, content, embedding, kind, keywords=keywords)
        self.store.record_audit(
            owner_id,
            AuditAction.ADD,
            "Explicitly remembered",
            memory_id=fact.id,
            memory_content=fact.content,
        )
        return AddResult(success=True, id=fact.id)

    def format_core_memory(self, owner_id: str) -> str:
        """Format the owner's core blocks for injection into a system prompt.

        Returns:
            XML-formatted block, or empty string if every block is empty.
        """
        blocks = [b for b in self.store.get_core_blocks(owner_id) if b.content.strip()]
        if not blocks:
            return ""

        lines = [f"[{block.label.value}]: {block.content}" for block in blocks]
        content = "\n".join(lines)

        return f"""<core_memory>
{content}
</core_memory>"""
