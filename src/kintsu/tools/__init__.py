"""Agent-facing tool interface."""

from .base import Tool, ToolResult

__all__ = ["Tool", "ToolResult"]
