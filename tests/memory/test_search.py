"""Tests for cosine similarity and active-only search."""

import math

import pytest

from kintsu.memory import MemoryKind, SimilaritySearch, VectorIndex
from kintsu.memory.search import cosine_similarity


class TestCosineSimilarity:
    def test_identical(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 1.0], [5.0, 5.0]) == pytest.approx(1.0)

    def test_zero_vector(self):
        """A zero vector is similar to nothing."""
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])


class TestVectorIndex:
    """Tests for the raw k-NN operator."""

    @pytest.mark.asyncio
    async def test_ranks_best_first(self, store):
        far = store.insert_fact("user-1", "Far", [0.0, 1.0], MemoryKind.SEMANTIC)
        near = store.insert_fact("user-1", "Near", [1.0, 0.1], MemoryKind.SEMANTIC)

        hits = await VectorIndex(store).nearest("user-1", [1.0, 0.0], k=5)

        assert [fact_id for fact_id, _ in hits] == [near.id, far.id]
        assert hits[0][1] > hits[1][1]

    @pytest.mark.asyncio
    async def test_limits_to_k(self, store):
        for i in range(4):
            store.insert_fact("user-1", f"Fact {i}", [1.0, float(i)], MemoryKind.SEMANTIC)

        hits = await VectorIndex(store).nearest("user-1", [1.0, 0.0], k=2)

        assert len(hits) == 2

    @pytest.mark.asyncio
    async def test_includes_retired_facts(self, store):
        """The raw index knows nothing about validity."""
        fact = store.insert_fact("user-1", "Retired", [1.0, 0.0], MemoryKind.SEMANTIC)
        store.invalidate(fact.id)

        hits = await VectorIndex(store).nearest("user-1", [1.0, 0.0], k=5)

        assert [fact_id for fact_id, _ in hits] == [fact.id]

    @pytest.mark.asyncio
    async def test_threshold(self, store):
        store.insert_fact("user-1", "Orthogonal", [0.0, 1.0], MemoryKind.SEMANTIC)
        close = store.insert_fact("user-1", "Close", [1.0, 0.0], MemoryKind.SEMANTIC)

        hits = await VectorIndex(store).nearest("user-1", [1.0, 0.0], k=5, threshold=0.5)

        assert [fact_id for fact_id, _ in hits] == [close.id]

    @pytest.mark.asyncio
    async def test_skips_other_dimensions(self, store):
        store.insert_fact("user-1", "Three dims", [1.0, 0.0, 0.0], MemoryKind.SEMANTIC)

        assert await VectorIndex(store).nearest("user-1", [1.0, 0.0], k=5) == []

    @pytest.mark.asyncio
    async def test_scoped_to_owner(self, store):
        store.insert_fact("user-2", "Other owner", [1.0, 0.0], MemoryKind.SEMANTIC)

        assert await VectorIndex(store).nearest("user-1", [1.0, 0.0], k=5) == []


class TestSimilaritySearch:
    """Tests for the active-only post-filter."""

    @pytest.mark.asyncio
    async def test_returns_active_with_scores(self, store):
        fact = store.insert_fact("user-1", "Likes tea", [1.0, 0.0], MemoryKind.SEMANTIC)

        results = await SimilaritySearch(store).find_similar("user-1", [1.0, 0.0])

        assert len(results) == 1
        assert results[0].fact.id == fact.id
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_excludes_invalidated_regardless_of_distance(self, store):
        """A retired fact never appears, even as an exact match."""
        retired = store.insert_fact("user-1", "Lives in Paris", [1.0, 0.0], MemoryKind.SEMANTIC)
        store.invalidate(retired.id)
        active = store.insert_fact("user-1", "Works remotely", [0.6, 0.8], MemoryKind.SEMANTIC)

        results = await SimilaritySearch(store).find_similar("user-1", [1.0, 0.0])

        assert [r.fact.id for r in results] == [active.id]

    @pytest.mark.asyncio
    async def test_refetches_each_hit(self, store):
        """Validity is checked on the fetched fact, not trusted from the index."""
        fact = store.insert_fact("user-1", "Stale hit", [1.0, 0.0], MemoryKind.SEMANTIC)

        class StaleIndex:
            async def nearest(self, owner_id, vector, k, threshold=None):
                return [(fact.id, 0.99), ("vanished", 0.95)]

        store.invalidate(fact.id)
        search = SimilaritySearch(store, index=StaleIndex())

        assert await search.find_similar("user-1", [1.0, 0.0]) == []

    @pytest.mark.asyncio
    async def test_default_k_is_five(self, store):
        for i in range(8):
            store.insert_fact("user-1", f"Fact {i}", [1.0, i / 10], MemoryKind.SEMANTIC)

        results = await SimilaritySearch(store).find_similar("user-1", [1.0, 0.0])

        assert len(results) == 5

    @pytest.mark.asyncio
    async def test_search_limit(self, store):
        for i in range(8):
            store.insert_fact("user-1", f"Fact {i}", [1.0, i / 10], MemoryKind.SEMANTIC)

        results = await SimilaritySearch(store).search("user-1", [1.0, 0.0], limit=7)

        assert len(results) == 7
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_score_is_cosine(self, store):
        store.insert_fact("user-1", "Diagonal", [1.0, 1.0], MemoryKind.SEMANTIC)

        results = await SimilaritySearch(store).search("user-1", [1.0, 0.0])

        assert results[0].score == pytest.approx(1 / math.sqrt(2))
