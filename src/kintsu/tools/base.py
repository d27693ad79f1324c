"""Base tool interface for agent function calling."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    output: str
    error: str | None = None
    metadata: dict[str, Any] | None = None


class Tool(ABC):
    """Base interface for tools exposed to the chat agent."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for LLM."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with given arguments."""
        ...

    def get_schema(self) -> dict[str, Any]:
        """Get tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, str | None]:
        """Validate arguments against schema. Returns (valid, error_message)."""
        required = self.parameters.get("required", [])
        properties = self.parameters.get("properties", {})

        for name in required:
            if name not in args:
                return False, f"Missing required argument: {name}"

        for key, value in args.items():
            spec = properties.get(key)
            if spec is None:
                continue
            expected_type = spec.get("type")
            if expected_type == "string" and not isinstance(value, str):
                return False, f"Argument '{key}' must be a string"
            if expected_type == "integer" and (
                not isinstance(value, int) or isinstance(value, bool)
            ):
                return False, f"Argument '{key}' must be an integer"
            if expected_type == "array":
                if not isinstance(value, list):
                    return False, f"Argument '{key}' must be an array"
                if spec.get("items", {}).get("type") == "string" and not all(
                    isinstance(item, str) for item in value
                ):
                    return False, f"Argument '{key}' must contain only strings"
            if "enum" in spec and value not in spec["enum"]:
                return False, f"Argument '{key}' must be one of: {', '.join(spec['enum'])}"

        return True, None
