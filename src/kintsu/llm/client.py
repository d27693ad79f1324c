"""Structured-output LLM gateway.

The pipeline asks the model for JSON and validates it against a pydantic
schema at the boundary, so callers only ever see validated objects or an
``LLMGatewayError``.
"""

from typing import Any, Protocol, TypeVar

from groq import AsyncGroq
from pydantic import BaseModel, ValidationError

from ..errors import LLMGatewayError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMGateway(Protocol):
    """Anything that can turn a prompt into a validated schema object."""

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[SchemaT],
    ) -> SchemaT: ...


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code block, if the model added one."""
    text = content.strip()
    if not text.startswith("```"):
        return text

    lines = [line for line in text.split("\n") if not line.startswith("```")]
    return "\n".join(lines).strip()


class GroqLLMGateway:
    """LLMGateway implementation that wraps AsyncGroq in JSON mode.

    Example:
        from groq import AsyncGroq
        from kintsu.llm import GroqLLMGateway

        llm = GroqLLMGateway(AsyncGroq(api_key="..."))
        result = await llm.generate(SYSTEM, prompt, ExtractionResult)
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = "moonshotai/kimi-k2-instruct",
        temperature: float = 0.0,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
            temperature: Sampling temperature; 0 keeps extraction stable.
        """
        self._client = client
        self._model = model
        self._temperature = temperature

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[SchemaT],
    ) -> SchemaT:
        """Run a completion and validate the JSON reply against ``schema``.

        Raises:
            LLMGatewayError: If the call fails or the reply does not validate.
        """
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise LLMGatewayError(f"LLM request failed: {e}") from e

        content = response.choices[0].message.content or ""
        if not content.strip():
            raise LLMGatewayError("LLM returned an empty response")

        try:
            return schema.model_validate_json(strip_code_fences(content))
        except ValidationError as e:
            raise LLMGatewayError(
                f"LLM response does not match {schema.__name__}: {e}"
            ) from e
