"""Gateways to the external LLM and embedding providers."""

from .client import GroqLLMGateway, LLMGateway, strip_code_fences
from .embeddings import EmbeddingGateway, OpenAIEmbeddingGateway

__all__ = [
    "EmbeddingGateway",
    "GroqLLMGateway",
    "LLMGateway",
    "OpenAIEmbeddingGateway",
    "strip_code_fences",
]
