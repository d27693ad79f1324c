"""Memory tools for the chat agent: explicit remember and on-demand recall."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from ..tools.base import Tool, ToolResult
from .models import MemoryKind

if TYPE_CHECKING:
    from .manager import MemoryManager


class RememberTool(Tool):
    """Tool for saving an explicit fact about the user."""

    def __init__(self, manager: MemoryManager, owner_id: str) -> None:
        """Initialize with a memory manager bound to one user.

        Args:
            manager: The MemoryManager used for the direct insert.
            owner_id: The user whose memories this tool writes.
        """
        self.manager = manager
        self.owner_id = owner_id

    @property
    def name(self) -> str:
        return "remember"

    @property
    def description(self) -> str:
        return (
            "Save a fact about the user, their partner or their relationship "
            "for future conversations. Use when the user explicitly asks to "
            "remember something."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": (
                        "Clear, standalone statement of the fact "
                        "(e.g., 'Partner prefers to talk after dinner')"
                    ),
                },
                "kind": {
                    "type": "string",
                    "enum": [kind.value for kind in MemoryKind],
                    "description": "episodic (event), semantic (fact) or procedural (strategy)",
                },
                "keywords": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Short tags for the fact",
                },
            },
            "required": ["content"],
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        """Save a fact to memory.

        Args:
            content: The fact to remember.
            kind: Memory kind, semantic by default.
            keywords: Optional tags.

        Returns:
            ToolResult with the new memory id, or the rejection reason.
        """
        valid, error = self.validate_args(kwargs)
        if not valid:
            return ToolResult(success=False, output="", error=error)

        content = kwargs.get("content", "")
        if not content.strip():
            return ToolResult(success=False, output="", error="'content' is required")

        try:
            result = await self.manager.add_from_tool(
                self.owner_id,
                content,
                kwargs.get("kind", MemoryKind.SEMANTIC.value),
                kwargs.get("keywords"),
            )
        except Exception as e:
            return ToolResult(
                success=False, output="", error=f"Failed to save memory: {e}"
            )

        if not result.success:
            if result.reason == "duplicate":
                return ToolResult(
                    success=False,
                    output="",
                    error="Already remembered",
                    metadata={"id": result.id, "reason": result.reason},
                )
            return ToolResult(success=False, output="", error=result.reason)

        return ToolResult(
            success=True,
            output=f"Remembered: {content.strip()}",
            metadata={"id": result.id},
        )


class RecallTool(Tool):
    """Tool for searching long-term memories by meaning."""

    def __init__(self, manager: MemoryManager, owner_id: str, limit: int = 5) -> None:
        self.manager = manager
        self.owner_id = owner_id
        self.limit = limit

    @property
    def name(self) -> str:
        return "recall"

    @property
    def description(self) -> str:
        return (
            "Recall relevant memories and context about the user, their partner, "
            "or their relationship history from past conversations"
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": (
                        "What to recall, e.g., 'partner information' or "
                        "'recent arguments' or 'user attachment style'"
                    ),
                },
            },
            "required": ["query"],
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        valid, error = self.validate_args(kwargs)
        if not valid:
            return ToolResult(success=False, output="", error=error)

        query = kwargs["query"]
        try:
            results = await self.manager.recall(self.owner_id, query, limit=self.limit)
        except Exception as e:
            return ToolResult(
                success=False, output="", error=f"Failed to search memories: {e}"
            )

        if not results:
            return ToolResult(
                success=True,
                output="No relevant memories found for this user.",
                metadata={"found": False, "query": query},
            )

        memories = [
            {
                "content": scored.fact.content,
                "kind": scored.fact.kind.value,
                "keywords": scored.fact.keywords,
                "relevance": round(scored.score, 4),
            }
            for scored in results
        ]
        return ToolResult(
            success=True,
            output=json.dumps(memories, ensure_ascii=False),
            metadata={"found": True, "query": query, "count": len(memories)},
        )
