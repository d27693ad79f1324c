"""Reconciliation of candidate facts against existing similar facts.

For every candidate the reconciler computes an embedding and collects the
owner's similar active facts. When nothing similar exists anywhere in the
batch, every candidate is added without asking the model. Otherwise one
decision call picks ADD, UPDATE, INVALIDATE or NOOP per candidate, falling
back to adding everything if that call fails.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field

from ..llm import EmbeddingGateway, LLMGateway
from .models import ScoredFact
from .schemas import DecisionAction, DecisionResult, ExtractedMemory, MemoryDecision
from .search import SimilaritySearch

logger = logging.getLogger(__name__)

NO_SIMILAR_REASON = "No similar existing memories found"
DECISION_FAILED_REASON = "Decision LLM call failed, defaulting to ADD"

DECISION_SYSTEM_PROMPT = """You are a memory deduplication system. Compare new memories against existing similar memories and decide the right operation.

Operations:
- **ADD**: Genuinely new information not captured by any existing memory
- **UPDATE**: An existing memory should be enhanced or corrected with new information. Provide the merged text and the target existing memory ID.
- **INVALIDATE**: An existing memory is now contradicted or outdated. Provide the target ID.
- **NOOP**: Information already adequately captured by existing memories.

Guidelines:
- Choose NOOP if semantically equivalent even if worded differently
- Choose UPDATE if the new memory adds meaningful detail to an existing one; merge into one comprehensive statement
- Choose INVALIDATE if new info directly contradicts old, then ADD the corrected version as a separate decision
- Choose ADD only for genuinely new information with no semantic overlap
- Be conservative: prefer NOOP/UPDATE over ADD to avoid memory duplication
- Every decision MUST have a new_memory_index that corresponds to a memory from the input list"""

DECISION_RESPONSE_FORMAT = """For each new memory (by index), decide: ADD, UPDATE, INVALIDATE, or NOOP.
Respond with JSON:
{
  "decisions": [
    {
      "new_memory_index": 0,
      "action": "ADD|UPDATE|INVALIDATE|NOOP",
      "content": "Memory text (required for ADD and UPDATE)",
      "target_memory_id": "existing memory ID (required for UPDATE and INVALIDATE)",
      "reason": "Brief explanation"
    }
  ]
}"""


@dataclass
class CandidateContext:
    """A candidate with its embedding and the active facts similar to it."""

    memory: ExtractedMemory
    embedding: list[float]
    similar: list[ScoredFact] = field(default_factory=list)


@dataclass
class ExistingFact:
    """An existing fact as shown to the decision model."""

    id: str
    content: str
    kind: str
    similarity: float

    def to_prompt(self) -> dict[str, object]:
        return {
            "id": self.id,
            "content": self.content,
            "kind": self.kind,
            "similarity": round(self.similarity, 4),
        }


@dataclass
class Reconciliation:
    """Everything the execution stage needs from reconciliation."""

    contexts: list[CandidateContext]
    existing: dict[str, ExistingFact]
    decisions: list[MemoryDecision]


class Reconciler:
    """Decides what to do with each extracted candidate."""

    def __init__(
        self,
        llm: LLMGateway,
        embeddings: EmbeddingGateway,
        search: SimilaritySearch,
        similar_limit: int = 5,
    ) -> None:
        self.llm = llm
        self.embeddings = embeddings
        self.search = search
        self.similar_limit = similar_limit

    async def reconcile(
        self, owner_id: str, candidates: list[ExtractedMemory]
    ) -> Reconciliation:
        """Gather context for every candidate and decide operations."""
        contexts = await self.gather(owner_id, candidates)
        existing = self.collect_existing(contexts)
        decisions = await self.decide(contexts, existing) if contexts else []
        return Reconciliation(contexts=contexts, existing=existing, decisions=decisions)

    async def gather(
        self, owner_id: str, candidates: list[ExtractedMemory]
    ) -> list[CandidateContext]:
        """Embed each candidate and find its similar active facts.

        Candidates are processed concurrently, but the result keeps the
        extraction order. A candidate whose embedding or search fails is
        dropped, so decision indices refer to the returned list.
        """
        results = await asyncio.gather(
            *(self._gather_one(owner_id, candidate) for candidate in candidates),
            return_exceptions=True,
        )

        contexts: list[CandidateContext] = []
        for candidate, result in zip(candidates, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(f'Failed to process memory "{candidate.content}": {result}')
                continue
            contexts.append(result)
        return contexts

    async def _gather_one(
        self, owner_id: str, candidate: ExtractedMemory
    ) -> CandidateContext:
        embedding = await self.embeddings.embed(candidate.content)
        similar = await self.search.find_similar(owner_id, embedding, k=self.similar_limit)
        return CandidateContext(memory=candidate, embedding=embedding, similar=similar)

    def collect_existing(
        self, contexts: list[CandidateContext]
    ) -> dict[str, ExistingFact]:
        """Union of all similar facts keyed by id.

        Contexts are walked in extraction order and a repeated id is
        overwritten, so the score from the later candidate wins.
        """
        existing: dict[str, ExistingFact] = {}
        for context in contexts:
            for scored in context.similar:
                existing[scored.fact.id] = ExistingFact(
                    id=scored.fact.id,
                    content=scored.fact.content,
                    kind=scored.fact.kind.value,
                    similarity=scored.score,
                )
        return existing

    async def decide(
        self,
        contexts: list[CandidateContext],
        existing: dict[str, ExistingFact],
    ) -> list[MemoryDecision]:
        if not existing:
            return self.add_all(contexts, NO_SIMILAR_REASON)

        prompt = self.build_prompt(contexts, existing)
        try:
            result = await self.llm.generate(DECISION_SYSTEM_PROMPT, prompt, DecisionResult)
        except Exception as e:
            logger.warning(f"Memory decision LLM failed, defaulting to ADD: {e}")
            return self.add_all(contexts, DECISION_FAILED_REASON)
        return result.decisions

    def add_all(
        self, contexts: list[CandidateContext], reason: str
    ) -> list[MemoryDecision]:
        """One ADD per candidate using its own extracted content."""
        return [
            MemoryDecision(
                new_memory_index=i,
                action=DecisionAction.ADD,
                content=context.memory.content,
                reason=reason,
            )
            for i, context in enumerate(contexts)
        ]

    def build_prompt(
        self,
        contexts: list[CandidateContext],
        existing: dict[str, ExistingFact],
    ) -> str:
        new_memories = [
            {"index": i, "content": c.memory.content, "kind": c.memory.kind.value}
            for i, c in enumerate(contexts)
        ]
        existing_memories = [fact.to_prompt() for fact in existing.values()]
        return (
            f"New memories to evaluate:\n{json.dumps(new_memories, indent=2, ensure_ascii=False)}\n\n"
            f"Existing similar memories in the database:\n"
            f"{json.dumps(existing_memories, indent=2, ensure_ascii=False)}\n\n"
            f"{DECISION_RESPONSE_FORMAT}"
        )
