"""Applies reconciliation decisions to the memory store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..llm import EmbeddingGateway
from .models import AuditAction, compute_content_hash
from .schemas import DecisionAction, MemoryDecision
from .store import MemoryStore

if TYPE_CHECKING:
    from ..logging import JSONLLogger
    from .reconciler import CandidateContext

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    """Counts of what happened to a batch of decisions."""

    added: int = 0
    updated: int = 0
    invalidated: int = 0
    noops: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return (
            self.added + self.updated + self.invalidated + self.noops
            + self.duplicates + self.skipped + self.failed
        )


class DecisionExecutor:
    """Executes decisions one by one.

    A decision that raises is logged and counted as failed; the rest of
    the batch still runs.
    """

    def __init__(
        self,
        store: MemoryStore,
        embeddings: EmbeddingGateway,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.event_logger = event_logger

    async def execute(
        self,
        owner_id: str,
        decisions: list[MemoryDecision],
        contexts: list[CandidateContext],
        conversation_id: str | None = None,
    ) -> ExecutionReport:
        report = ExecutionReport()

        for decision in decisions:
            index = decision.new_memory_index
            if not 0 <= index < len(contexts):
                logger.warning(f"Skipping decision for unknown memory index {index}")
                report.skipped += 1
                continue

            try:
                await self._execute_one(
                    owner_id, decision, contexts[index], conversation_id, report
                )
            except Exception as e:
                logger.error(
                    f"Failed to execute {decision.action.value} for memory {index}: {e}"
                )
                report.failed += 1
                if self.event_logger:
                    self.event_logger.log_decision(
                        decision.action.value,
                        decision.reason,
                        owner_id=owner_id,
                        conversation_id=conversation_id,
                        target_memory_id=decision.target_memory_id,
                        error=str(e),
                    )

        return report

    async def _execute_one(
        self,
        owner_id: str,
        decision: MemoryDecision,
        context: CandidateContext,
        conversation_id: str | None,
        report: ExecutionReport,
    ) -> None:
        if decision.action == DecisionAction.ADD:
            await self._add(owner_id, decision, context, conversation_id, report)

        elif decision.action == DecisionAction.UPDATE:
            if not decision.target_memory_id or not decision.content:
                report.skipped += 1
                return
            embedding = await self.embeddings.embed(decision.content)
            self.store.invalidate(decision.target_memory_id, owner_id)
            fact = self.store.insert_fact(
                owner_id,
                decision.content,
                embedding,
                context.memory.kind,
                keywords=context.memory.keywords,
                source_conversation_id=conversation_id,
            )
            report.updated += 1
            self._audit(
                owner_id, AuditAction.UPDATE, decision.reason, conversation_id,
                memory_id=fact.id,
                target_memory_id=decision.target_memory_id,
                memory_content=fact.content,
            )

        elif decision.action == DecisionAction.INVALIDATE:
            if not decision.target_memory_id:
                report.skipped += 1
                return
            self.store.invalidate(decision.target_memory_id, owner_id)
            report.invalidated += 1
            self._audit(
                owner_id, AuditAction.INVALIDATE, decision.reason, conversation_id,
                target_memory_id=decision.target_memory_id,
            )

        else:
            report.noops += 1
            self._audit(
                owner_id, AuditAction.NOOP, decision.reason, conversation_id,
                target_memory_id=decision.target_memory_id,
                memory_content=context.memory.content,
            )

    async def _add(
        self,
        owner_id: str,
        decision: MemoryDecision,
        context: CandidateContext,
        conversation_id: str | None,
        report: ExecutionReport,
    ) -> None:
        original = context.memory.content
        content = decision.content or original

        duplicate = self.store.find_active_by_hash(owner_id, compute_content_hash(content))
        if duplicate is not None:
            report.duplicates += 1
            self._audit(
                owner_id, AuditAction.HASH_DUPLICATE,
                f"Identical active memory already stored ({decision.reason})",
                conversation_id,
                target_memory_id=duplicate.id,
                memory_content=content,
            )
            return

        # Re-embed only if the LLM rewrote the content
        if content == original:
            embedding = context.embedding
        else:
            embedding = await self.embeddings.embed(content)

        fact = self.store.insert_fact(
            owner_id,
            content,
            embedding,
            context.memory.kind,
            keywords=context.memory.keywords,
            source_conversation_id=conversation_id,
        )
        report.added += 1
        self._audit(
            owner_id, AuditAction.ADD, decision.reason, conversation_id,
            memory_id=fact.id,
            memory_content=fact.content,
        )

    def _audit(
        self,
        owner_id: str,
        action: AuditAction,
        reason: str,
        conversation_id: str | None,
        memory_id: str | None = None,
        target_memory_id: str | None = None,
        memory_content: str | None = None,
    ) -> None:
        self.store.record_audit(
            owner_id,
            action,
            reason,
            conversation_id=conversation_id,
            memory_id=memory_id,
            target_memory_id=target_memory_id,
            memory_content=memory_content,
        )
        if self.event_logger:
            self.event_logger.log_decision(
                action.value,
                reason,
                owner_id=owner_id,
                conversation_id=conversation_id,
                memory_id=memory_id,
                target_memory_id=target_memory_id,
            )
