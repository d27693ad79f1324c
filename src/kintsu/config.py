"""Runtime configuration for the memory pipeline.

Values come from keyword arguments or, through ``config_from_env``, from
environment variables (a ``.env`` file is loaded by the entry point).
"""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOME = Path.home() / ".kintsu"


@dataclass
class MemoryConfig:
    """Configuration for the memory pipeline.

    Attributes:
        db_path: SQLite database holding facts, core blocks, queue and messages.
        log_dir: Directory for the JSONL event log.
        llm_model: Groq model used for extraction and decisions.
        embedding_model: OpenAI embedding model.
        embedding_dimensions: Length of every stored embedding.
        max_messages: Most recent turns sent to extraction.
        similar_limit: Neighbours fetched per candidate during reconciliation.
        search_limit: Default result count for ad-hoc search.
        queue_batch_size: Pending items handled by one drain run.
        drain_delay: Seconds between an enqueue and its scheduled drain.
    """

    db_path: Path | None = None
    log_dir: Path | None = None
    llm_model: str = "moonshotai/kimi-k2-instruct"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    max_messages: int = 20
    similar_limit: int = 5
    search_limit: int = 10
    queue_batch_size: int = 10
    drain_delay: float = 5.0

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = DEFAULT_HOME / "memory.db"
        if self.log_dir is None:
            self.log_dir = DEFAULT_HOME / "logs"
        self.db_path = Path(self.db_path)
        self.log_dir = Path(self.log_dir)

        if self.max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        if self.similar_limit < 1:
            raise ValueError("similar_limit must be at least 1")
        if self.queue_batch_size < 1:
            raise ValueError("queue_batch_size must be at least 1")
        if self.drain_delay < 0:
            raise ValueError("drain_delay cannot be negative")


def config_from_env() -> MemoryConfig:
    """Load configuration from environment variables."""
    db_path = os.getenv("KINTSU_DB_PATH")
    log_dir = os.getenv("KINTSU_LOG_DIR")

    return MemoryConfig(
        db_path=Path(db_path).expanduser() if db_path else None,
        log_dir=Path(log_dir).expanduser() if log_dir else None,
        llm_model=os.getenv("GROQ_MODEL", "moonshotai/kimi-k2-instruct"),
        embedding_model=os.getenv("KINTSU_EMBEDDING_MODEL", "text-embedding-3-small"),
        drain_delay=float(os.getenv("KINTSU_DRAIN_DELAY", "5")),
        max_messages=int(os.getenv("KINTSU_MAX_MESSAGES", "20")),
    )
