"""Nearest-neighbour lookup over stored fact embeddings.

``VectorIndex`` plays the role of the store's k-NN operator: it ranks an
owner's stored embeddings by cosine similarity and knows nothing about
temporal validity. ``SimilaritySearch`` layers the active-only filter on
top by re-fetching every hit.
"""

import logging
import math

from .models import ScoredFact
from .store import MemoryStore

logger = logging.getLogger(__name__)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors, 0.0 if either has zero norm."""
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


class VectorIndex:
    """Brute-force k-NN over one owner's stored embeddings."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def nearest(
        self,
        owner_id: str,
        vector: list[float],
        k: int,
        threshold: float | None = None,
    ) -> list[tuple[str, float]]:
        """Return up to ``k`` (fact_id, score) pairs, best first.

        Retired facts are included; callers filter them.
        """
        scored = []
        for fact_id, embedding in self.store.iter_embeddings(owner_id):
            if len(embedding) != len(vector):
                logger.warning(f"Skipping fact {fact_id}: embedding has {len(embedding)} dimensions")
                continue
            score = cosine_similarity(vector, embedding)
            if threshold is None or score >= threshold:
                scored.append((fact_id, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:k]


class SimilaritySearch:
    """Active-only similarity search for one owner."""

    def __init__(self, store: MemoryStore, index: VectorIndex | None = None) -> None:
        self.store = store
        self.index = index or VectorIndex(store)

    async def find_similar(
        self,
        owner_id: str,
        vector: list[float],
        k: int = 5,
    ) -> list[ScoredFact]:
        """Nearest active facts for reconciliation.

        The index may return retired facts, so each hit is fetched again
        and kept only if it still exists and ``invalid_from`` is unset.
        """
        results: list[ScoredFact] = []
        for fact_id, score in await self.index.nearest(owner_id, vector, k):
            fact = self.store.get_fact(fact_id)
            if fact is not None and fact.is_active and fact.owner_id == owner_id:
                results.append(ScoredFact(fact=fact, score=score))
        return results

    async def search(
        self,
        owner_id: str,
        query_vector: list[float],
        limit: int = 10,
    ) -> list[ScoredFact]:
        """Ad-hoc recall: same active filter, caller-chosen limit."""
        return await self.find_similar(owner_id, query_vector, k=limit)
