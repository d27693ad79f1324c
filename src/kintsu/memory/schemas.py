"""Pydantic schemas for the structured LLM replies."""

from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, field_validator

from .models import CoreLabel, MemoryKind


class DecisionAction(str, Enum):
    """Operations the decision model may choose for a candidate."""

    ADD = "ADD"
    UPDATE = "UPDATE"
    INVALIDATE = "INVALIDATE"
    NOOP = "NOOP"


class ExtractedMemory(BaseModel):
    """A candidate fact proposed by the extraction model."""

    content: str = Field(description="Clear, standalone fact or observation")
    kind: MemoryKind = Field(validation_alias=AliasChoices("kind", "type"))
    keywords: list[str] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be empty")
        return value


class CoreMemoryUpdate(BaseModel):
    """A whole-block replacement for one core profile slot."""

    label: str
    content: str = Field(
        description="Full updated content for this block, merging existing and new info"
    )


class ExtractionResult(BaseModel):
    memories: list[ExtractedMemory]
    core_memory_updates: list[CoreMemoryUpdate]

    def valid_core_updates(self) -> list[tuple[CoreLabel, str]]:
        """Core updates whose label is one of the known blocks.

        Unknown labels are dropped one by one instead of failing the batch.
        """
        known = {label.value: label for label in CoreLabel}
        return [
            (known[update.label], update.content)
            for update in self.core_memory_updates
            if update.label in known
        ]

    @property
    def is_empty(self) -> bool:
        return not self.memories and not self.core_memory_updates


class MemoryDecision(BaseModel):
    """What to do with one candidate, by its index in the batch."""

    new_memory_index: int
    action: DecisionAction
    content: str | None = Field(
        default=None, description="Memory text (required for ADD and UPDATE)"
    )
    target_memory_id: str | None = Field(
        default=None,
        description="Existing memory ID (required for UPDATE and INVALIDATE)",
    )
    reason: str


class DecisionResult(BaseModel):
    decisions: list[MemoryDecision]
