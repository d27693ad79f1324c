"""Deduplicating, delayed work queue feeding the memory pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from .models import QueueItem, QueueStatus
from .store import MemoryStore

if TYPE_CHECKING:
    from ..logging import JSONLLogger
    from .manager import MemoryManager

logger = logging.getLogger(__name__)


class MessageSource(Protocol):
    """Where the queue reads a conversation's turns from."""

    def list_messages(self, conversation_id: str) -> list[dict[str, Any]]: ...


@dataclass
class DrainReport:
    """Outcome of one drain run."""

    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class ProcessingQueue:
    """Batches finished conversation turns into extraction jobs.

    Repeated triggers for a conversation collapse into its single pending
    item. Each new item schedules a drain after ``drain_delay`` seconds so
    extraction sees the whole exchange rather than one message at a time.
    Failed items are not retried; a later message creates a fresh item.
    """

    def __init__(
        self,
        store: MemoryStore,
        manager: MemoryManager,
        messages: MessageSource,
        *,
        drain_delay: float = 5.0,
        batch_size: int = 10,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.manager = manager
        self.messages = messages
        self.drain_delay = drain_delay
        self.batch_size = batch_size
        self.event_logger = event_logger
        self._tasks: set[asyncio.Task] = set()

    async def enqueue(self, owner_id: str, conversation_id: str) -> QueueItem | None:
        """Queue a conversation for processing.

        Returns:
            The new pending item, or None if one was already pending.
        """
        if self.store.find_pending_item(conversation_id) is not None:
            self._log("queue_coalesced", owner_id=owner_id, conversation_id=conversation_id)
            return None

        item = self.store.insert_queue_item(owner_id, conversation_id)
        if item is None:
            self._log("queue_coalesced", owner_id=owner_id, conversation_id=conversation_id)
            return None

        self._log(
            "queue_enqueued",
            owner_id=owner_id,
            conversation_id=conversation_id,
            queue_item_id=item.id,
        )
        self.schedule_drain()
        return item

    def schedule_drain(self) -> asyncio.Task:
        """Start a drain after ``drain_delay`` seconds in the background."""
        task = asyncio.create_task(self._delayed_drain())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _delayed_drain(self) -> None:
        try:
            await asyncio.sleep(self.drain_delay)
            await self.drain()
        except Exception as e:
            logger.error(f"Scheduled memory queue drain failed: {e}")

    async def drain(self) -> DrainReport:
        """Process up to ``batch_size`` pending items, one after another.

        An exception while processing an item marks only that item failed.
        """
        report = DrainReport()

        for item in self.store.list_pending_items(self.batch_size):
            try:
                claimed = self.store.claim_queue_item(item.id)
            except Exception as e:
                logger.error(f"Could not claim memory queue item {item.id}: {e}")
                claimed = False
            if not claimed:
                report.skipped.append(item.id)
                continue
            start = time.time()
            try:
                self._log_item(item, QueueStatus.PROCESSING)
                messages = self.messages.list_messages(item.conversation_id)
                if messages:
                    await self.manager.process_conversation(
                        item.owner_id, messages, conversation_id=item.conversation_id
                    )
                self.store.finish_queue_item(item.id, QueueStatus.COMPLETED)
            except Exception as e:
                logger.error(f"Memory queue item {item.id} failed: {e}")
                report.failed.append(item.id)
                self._mark_failed(item, start, e)
                continue

            report.completed.append(item.id)
            self._log_item(
                item, QueueStatus.COMPLETED, duration_ms=(time.time() - start) * 1000
            )

        return report

    def _mark_failed(self, item: QueueItem, start: float, error: Exception) -> None:
        """Move an item to failed; a store error here must not stop the drain."""
        try:
            self.store.finish_queue_item(item.id, QueueStatus.FAILED)
            self._log_item(
                item, QueueStatus.FAILED,
                duration_ms=(time.time() - start) * 1000,
                error=str(error),
            )
        except Exception as e:
            logger.error(f"Could not mark memory queue item {item.id} failed: {e}")

    async def wait_idle(self) -> None:
        """Wait for every scheduled drain to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel scheduled drains that have not finished."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def pending_count(self) -> int:
        return len(self.store.list_queue_items(status=QueueStatus.PENDING))

    def get(self, item_id: str) -> QueueItem | None:
        return self.store.get_queue_item(item_id)

    def list_items(self, status: QueueStatus | None = None) -> list[QueueItem]:
        return self.store.list_queue_items(status=status)

    def _log_item(
        self,
        item: QueueItem,
        status: QueueStatus,
        duration_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        if not self.event_logger:
            return
        try:
            self.event_logger.log_queue_item(
                item.id,
                status.value,
                owner_id=item.owner_id,
                conversation_id=item.conversation_id,
                duration_ms=duration_ms,
                error=error,
            )
        except OSError as e:
            logger.warning(f"Could not write queue event for {item.id}: {e}")

    def _log(self, event: str, **fields: Any) -> None:
        if self.event_logger:
            self.event_logger.log(event, **fields)
