"""Embedding gateway backed by the OpenAI embeddings API."""

from typing import Protocol

from openai import AsyncOpenAI

from ..errors import EmbeddingError


class EmbeddingGateway(Protocol):
    """Pure function from text to a fixed-length vector."""

    async def embed(self, text: str) -> list[float]: ...


class OpenAIEmbeddingGateway:
    """EmbeddingGateway implementation that wraps AsyncOpenAI."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
    ) -> None:
        self._client = client
        self._model = model
        self._dimensions = dimensions

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: On transport errors or a vector of the wrong size.
        """
        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=[text],
                dimensions=self._dimensions,
            )
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        vector = list(response.data[0].embedding)
        if len(vector) != self._dimensions:
            raise EmbeddingError(
                f"Expected {self._dimensions} dimensions, got {len(vector)}"
            )
        return vector
