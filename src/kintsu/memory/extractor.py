"""Candidate fact extraction from conversations using the LLM."""

import logging
from typing import Any

from ..llm import LLMGateway
from .models import CoreMemoryBlock
from .schemas import ExtractionResult

logger = logging.getLogger(__name__)

MAX_MESSAGES = 20

EXTRACTION_SYSTEM_PROMPT = """You are a memory extraction system for Kintsu, a relationship coaching AI specialized in attachment theory.

Extract important facts, observations, and insights from conversations. Focus on:

1. **User Information**: Name, emotional state, attachment patterns, personal details
2. **Partner Information**: Name, behaviors, attachment style indicators
3. **Relationship Dynamics**: Interaction patterns, conflicts, positive moments
4. **Emotional Triggers**: What causes anxiety, withdrawal, or conflict escalation
5. **Communication Insights**: Effective/ineffective communication patterns observed
6. **Growth & Progress**: Behavioral changes, new understandings, breakthroughs

Classify each extracted memory with a kind:
- **episodic**: A specific event or moment ("Had an argument about finances last week")
- **semantic**: A generalizable fact ("Partner tends to shut down during emotional conversations")
- **procedural**: A strategy or technique that works ("Using 'I feel' statements helps de-escalate conflicts")

Also determine if any information should update the always-available core memory blocks:
- **user_profile**: Fundamental facts about the user (name, age, background, attachment style)
- **partner_info**: Fundamental facts about their partner
- **relationship_context**: Overall relationship situation and dynamics
- **preferences**: How the user wants to be supported by Kintsu

IMPORTANT: Only extract from USER messages and the assistant's direct observations about the user. Do not fabricate information. Be concise but complete. If the conversation is just greetings or small talk, return empty arrays."""

RESPONSE_FORMAT = """Respond with JSON:
{
  "memories": [
    {
      "content": "Clear, standalone fact or observation",
      "kind": "episodic|semantic|procedural",
      "keywords": ["keyword1", "keyword2"]
    }
  ],
  "core_memory_updates": [
    {
      "label": "user_profile|partner_info|relationship_context|preferences",
      "content": "Full updated content for this block, merging existing and new info"
    }
  ]
}"""


class MemoryExtractor:
    """Extracts candidate facts and core profile updates from a conversation."""

    def __init__(self, llm: LLMGateway, max_messages: int = MAX_MESSAGES) -> None:
        """Initialize the extractor.

        Args:
            llm: Gateway used for the structured extraction call.
            max_messages: Most recent turns kept in the extraction window.
        """
        self.llm = llm
        self.max_messages = max_messages

    async def extract(
        self,
        messages: list[dict[str, Any]],
        core_blocks: list[CoreMemoryBlock] | None = None,
    ) -> ExtractionResult | None:
        """Extract memories from a conversation.

        Args:
            messages: The conversation turns, oldest first.
            core_blocks: The owner's current core blocks, given as context.

        Returns:
            The validated extraction, or None if the LLM call failed or
            returned an invalid payload.
        """
        if not messages:
            return ExtractionResult(memories=[], core_memory_updates=[])

        prompt = self.build_prompt(self.window(messages), core_blocks or [])

        try:
            return await self.llm.generate(
                EXTRACTION_SYSTEM_PROMPT, prompt, ExtractionResult
            )
        except Exception as e:
            logger.warning(f"Memory extraction failed: {e}")
            return None

    def window(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Keep only the most recent ``max_messages`` turns."""
        if len(messages) > self.max_messages:
            return messages[-self.max_messages:]
        return messages

    def build_prompt(
        self,
        messages: list[dict[str, Any]],
        core_blocks: list[CoreMemoryBlock],
    ) -> str:
        core_text = self._format_core_blocks(core_blocks)
        conversation_text = self._format_conversation(messages)
        return (
            f"Current core memory blocks:\n{core_text}\n\n"
            f"Conversation to process:\n{conversation_text}\n\n"
            f"Extract memories and any core memory updates. {RESPONSE_FORMAT}"
        )

    def _format_core_blocks(self, blocks: list[CoreMemoryBlock]) -> str:
        return "\n".join(
            f"[{block.label.value}]: {block.content or '(empty)'}" for block in blocks
        )

    def _format_conversation(self, messages: list[dict[str, Any]]) -> str:
        """Format messages as ``ROLE: content`` paragraphs."""
        lines = []
        for msg in messages:
            role = str(msg.get("role", "unknown")).upper()
            content = msg.get("content", "")
            lines.append(f"{role}: {content}")
        return "\n\n".join(lines)
