"""Tests for DecisionExecutor."""

import json
from unittest.mock import patch

import pytest

from kintsu.memory import (
    AuditAction,
    CandidateContext,
    DecisionAction,
    DecisionExecutor,
    ExtractedMemory,
    MemoryDecision,
    MemoryKind,
)


def context(content: str, embedding=None, kind=MemoryKind.SEMANTIC, keywords=None) -> CandidateContext:
    return CandidateContext(
        memory=ExtractedMemory(content=content, kind=kind, keywords=keywords or []),
        embedding=embedding or [0.1, 0.2, 0.3],
    )


def decision(action: DecisionAction, index: int = 0, **fields) -> MemoryDecision:
    return MemoryDecision(
        new_memory_index=index, action=action, reason=fields.pop("reason", "test"), **fields
    )


@pytest.fixture
def executor(store, embeddings):
    return DecisionExecutor(store, embeddings)


class TestAdd:
    """Tests for ADD decisions."""

    @pytest.mark.asyncio
    async def test_reuses_embedding_when_content_unchanged(self, executor, store, embeddings):
        """No content on the decision means the candidate's vector is reused."""
        ctx = context("X", embedding=[0.5, 0.5, 0.5], keywords=["tag"])

        report = await executor.execute("user-1", [decision(DecisionAction.ADD)], [ctx], "conv-1")

        assert report.added == 1
        assert embeddings.calls == []
        [fact] = store.list_facts("user-1")
        assert fact.content == "X"
        assert fact.embedding == [0.5, 0.5, 0.5]
        assert fact.keywords == ["tag"]
        assert fact.source_conversation_id == "conv-1"
        assert fact.is_active

    @pytest.mark.asyncio
    async def test_reuses_embedding_when_content_identical(self, executor, embeddings):
        ctx = context("X")

        await executor.execute("user-1", [decision(DecisionAction.ADD, content="X")], [ctx])

        assert embeddings.calls == []

    @pytest.mark.asyncio
    async def test_fresh_embedding_when_content_rewritten(self, executor, store, embeddings):
        embeddings.vectors = {"Y": [9.0, 9.0, 9.0]}
        ctx = context("X", embedding=[0.5, 0.5, 0.5])

        await executor.execute("user-1", [decision(DecisionAction.ADD, content="Y")], [ctx])

        assert embeddings.calls == ["Y"]
        [fact] = store.list_facts("user-1")
        assert fact.content == "Y"
        assert fact.embedding == [9.0, 9.0, 9.0]

    @pytest.mark.asyncio
    async def test_identical_active_fact_not_duplicated(self, executor, store):
        """Normalized-identical content already stored is recorded, not inserted."""
        original = store.insert_fact("user-1", "Likes hiking", [1.0], MemoryKind.SEMANTIC)

        report = await executor.execute(
            "user-1", [decision(DecisionAction.ADD)], [context("  likes HIKING ")]
        )

        assert report.duplicates == 1
        assert report.added == 0
        assert [f.id for f in store.list_facts("user-1")] == [original.id]
        [entry] = store.list_audit("user-1")
        assert entry.action == AuditAction.HASH_DUPLICATE
        assert entry.target_memory_id == original.id

    @pytest.mark.asyncio
    async def test_audited(self, executor, store):
        await executor.execute(
            "user-1", [decision(DecisionAction.ADD, reason="brand new")], [context("Has a cat")], "conv-1"
        )

        [entry] = store.list_audit("user-1")
        assert entry.action == AuditAction.ADD
        assert entry.reason == "brand new"
        assert entry.conversation_id == "conv-1"
        assert entry.memory_content == "Has a cat"


class TestUpdate:
    """Tests for UPDATE decisions."""

    @pytest.mark.asyncio
    async def test_invalidates_target_and_inserts_merged(self, executor, store, embeddings):
        """Exactly two effects: old fact retired, new active fact inserted."""
        old = store.insert_fact(
            "user-1", "Partner withdraws during arguments", [1.0, 0.0, 0.0], MemoryKind.SEMANTIC
        )
        merged = "Partner withdraws during arguments, especially about money"
        ctx = context("Partner shuts down when money comes up", kind=MemoryKind.SEMANTIC)

        report = await executor.execute(
            "user-1",
            [decision(DecisionAction.UPDATE, content=merged, target_memory_id=old.id)],
            [ctx],
        )

        assert report.updated == 1
        retired = store.get_fact(old.id)
        assert not retired.is_active
        assert retired.content == "Partner withdraws during arguments"
        assert retired.embedding == [1.0, 0.0, 0.0]
        [active] = store.list_facts("user-1")
        assert active.content == merged
        assert active.id != old.id
        assert len(store.list_facts("user-1", include_invalid=True)) == 2

    @pytest.mark.asyncio
    async def test_always_embeds_fresh(self, executor, store, embeddings):
        old = store.insert_fact("user-1", "X", [1.0], MemoryKind.SEMANTIC)

        await executor.execute(
            "user-1",
            [decision(DecisionAction.UPDATE, content="X", target_memory_id=old.id)],
            [context("X")],
        )

        assert embeddings.calls == ["X"]

    @pytest.mark.asyncio
    async def test_embedding_failure_keeps_target_active(self, executor, store, embeddings):
        """The target is only retired once the merged text has an embedding."""
        old = store.insert_fact("user-1", "Old", [1.0], MemoryKind.SEMANTIC)
        embeddings.fail_on = {"merged text"}

        report = await executor.execute(
            "user-1",
            [decision(DecisionAction.UPDATE, content="merged text", target_memory_id=old.id)],
            [context("X")],
        )

        assert report.failed == 1
        assert store.get_fact(old.id).is_active
        assert [f.id for f in store.list_facts("user-1", include_invalid=True)] == [old.id]
        assert store.list_audit("user-1") == []

    @pytest.mark.asyncio
    async def test_missing_target_skipped(self, executor, store):
        report = await executor.execute(
            "user-1", [decision(DecisionAction.UPDATE, content="merged")], [context("X")]
        )

        assert report.skipped == 1
        assert store.list_facts("user-1", include_invalid=True) == []

    @pytest.mark.asyncio
    async def test_missing_content_skipped(self, executor, store):
        old = store.insert_fact("user-1", "Old", [1.0], MemoryKind.SEMANTIC)

        report = await executor.execute(
            "user-1", [decision(DecisionAction.UPDATE, target_memory_id=old.id)], [context("X")]
        )

        assert report.skipped == 1
        assert store.get_fact(old.id).is_active

    @pytest.mark.asyncio
    async def test_audit_links_old_and_new(self, executor, store):
        old = store.insert_fact("user-1", "Old", [1.0], MemoryKind.SEMANTIC)

        await executor.execute(
            "user-1",
            [decision(DecisionAction.UPDATE, content="New", target_memory_id=old.id)],
            [context("X")],
        )

        [entry] = store.list_audit("user-1")
        assert entry.action == AuditAction.UPDATE
        assert entry.target_memory_id == old.id
        assert entry.memory_id == store.list_facts("user-1")[0].id


class TestInvalidate:
    """Tests for INVALIDATE decisions."""

    @pytest.mark.asyncio
    async def test_retires_target_only(self, executor, store):
        old = store.insert_fact("user-1", "Lives in Berlin", [1.0], MemoryKind.SEMANTIC)

        report = await executor.execute(
            "user-1",
            [decision(DecisionAction.INVALIDATE, target_memory_id=old.id)],
            [context("Moved to Madrid")],
        )

        assert report.invalidated == 1
        assert not store.get_fact(old.id).is_active
        assert store.list_facts("user-1") == []

    @pytest.mark.asyncio
    async def test_missing_target_skipped(self, executor):
        report = await executor.execute(
            "user-1", [decision(DecisionAction.INVALIDATE)], [context("X")]
        )
        assert report.skipped == 1

    @pytest.mark.asyncio
    async def test_unknown_target_fails_alone(self, executor, store):
        """An unknown id fails that decision; later decisions still run."""
        report = await executor.execute(
            "user-1",
            [
                decision(DecisionAction.INVALIDATE, target_memory_id="missing"),
                decision(DecisionAction.ADD),
            ],
            [context("Still stored")],
        )

        assert report.failed == 1
        assert report.added == 1
        assert [f.content for f in store.list_facts("user-1")] == ["Still stored"]

    @pytest.mark.asyncio
    async def test_other_owner_target_fails(self, executor, store):
        foreign = store.insert_fact("user-2", "Not yours", [1.0], MemoryKind.SEMANTIC)

        report = await executor.execute(
            "user-1",
            [decision(DecisionAction.INVALIDATE, target_memory_id=foreign.id)],
            [context("X")],
        )

        assert report.failed == 1
        assert store.get_fact(foreign.id).is_active


class TestNoop:
    @pytest.mark.asyncio
    async def test_no_store_mutation(self, executor, store, embeddings):
        report = await executor.execute(
            "user-1", [decision(DecisionAction.NOOP, reason="already known")], [context("X")]
        )

        assert report.noops == 1
        assert store.list_facts("user-1", include_invalid=True) == []
        assert embeddings.calls == []
        assert store.list_audit("user-1")[0].action == AuditAction.NOOP


class TestIsolation:
    """Tests for per-decision failure isolation."""

    @pytest.mark.asyncio
    async def test_out_of_bounds_index_skipped(self, executor, store):
        report = await executor.execute(
            "user-1",
            [decision(DecisionAction.ADD, index=99), decision(DecisionAction.ADD, index=0)],
            [context("Only candidate")],
        )

        assert report.skipped == 1
        assert report.added == 1
        assert [f.content for f in store.list_facts("user-1")] == ["Only candidate"]

    @pytest.mark.asyncio
    async def test_negative_index_skipped(self, executor, store):
        report = await executor.execute(
            "user-1", [decision(DecisionAction.ADD, index=-1)], [context("X")]
        )

        assert report.skipped == 1
        assert store.list_facts("user-1") == []

    @pytest.mark.asyncio
    async def test_embedding_failure_isolated(self, executor, store, embeddings):
        embeddings.fail_on = {"Rewritten"}

        report = await executor.execute(
            "user-1",
            [
                decision(DecisionAction.ADD, index=0, content="Rewritten"),
                decision(DecisionAction.ADD, index=1),
            ],
            [context("First"), context("Second")],
        )

        assert report.failed == 1
        assert report.added == 1
        assert [f.content for f in store.list_facts("user-1")] == ["Second"]

    @pytest.mark.asyncio
    async def test_store_failure_isolated(self, executor, store):
        original_insert = store.insert_fact
        calls = []

        def flaky_insert(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise RuntimeError("disk full")
            return original_insert(*args, **kwargs)

        with patch.object(store, "insert_fact", side_effect=flaky_insert):
            report = await executor.execute(
                "user-1",
                [decision(DecisionAction.ADD, index=0), decision(DecisionAction.ADD, index=1)],
                [context("First"), context("Second")],
            )

        assert report.failed == 1
        assert report.added == 1
        assert report.total == 2


class TestEventLog:
    @pytest.mark.asyncio
    async def test_decisions_logged(self, store, embeddings, event_log_dir):
        from kintsu.logging import get_logger

        executor = DecisionExecutor(store, embeddings, event_logger=get_logger())

        await executor.execute(
            "user-1",
            [decision(DecisionAction.ADD, reason="new"), decision(DecisionAction.INVALIDATE, target_memory_id="missing")],
            [context("X")],
            "conv-1",
        )

        lines = (event_log_dir / "memory.jsonl").read_text().strip().split("\n")
        entries = [json.loads(line) for line in lines]
        assert [e["event"] for e in entries] == ["memory_decision", "memory_decision"]
        assert entries[0]["action"] == "ADD"
        assert entries[0]["extra"]["reason"] == "new"
        assert "error" in entries[1]
