"""Shared fixtures for the kintsu test suite."""

import hashlib
from pathlib import Path

import pytest

from kintsu.errors import EmbeddingError
from kintsu.logging import configure_logger
from kintsu.memory import MemoryStore


class FakeEmbeddings:
    """Deterministic embedding gateway.

    Texts registered in ``vectors`` get that exact vector; anything else
    gets a vector derived from its SHA-256 digest.
    """

    def __init__(self, dimensions: int = 8) -> None:
        self.dimensions = dimensions
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise EmbeddingError(f"cannot embed {text!r}")
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [byte / 255.0 - 0.5 for byte in digest[: self.dimensions]]


@pytest.fixture(autouse=True)
def event_log_dir(tmp_path: Path) -> Path:
    """Send the global JSONL event log to a temporary directory."""
    log_dir = tmp_path / "logs"
    configure_logger(log_dir)
    return log_dir


@pytest.fixture
def store(tmp_path: Path) -> MemoryStore:
    """Create a MemoryStore with a temporary database and one owner."""
    db_path = tmp_path / "test_memory.db"
    store = MemoryStore(db_path)
    store.init_db()
    store.create_owner("user-1")
    yield store
    store.close()


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()
