"""JSONL event log for pipeline observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    owner_id: str | None = None
    conversation_id: str | None = None
    queue_item_id: str | None = None
    action: str | None = None
    status: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured pipeline events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "memory.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".kintsu" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        owner_id: str | None = None,
        conversation_id: str | None = None,
        queue_item_id: str | None = None,
        action: str | None = None,
        status: str | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            owner_id=owner_id,
            conversation_id=conversation_id,
            queue_item_id=queue_item_id,
            action=action,
            status=status,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_queue_item(
        self,
        queue_item_id: str,
        status: str,
        *,
        owner_id: str | None = None,
        conversation_id: str | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        """Log a queue item reaching a new status."""
        self.log(
            "queue_item",
            owner_id=owner_id,
            conversation_id=conversation_id,
            queue_item_id=queue_item_id,
            status=status,
            duration_ms=duration_ms,
            error=error,
        )

    def log_decision(
        self,
        action: str,
        reason: str,
        *,
        owner_id: str | None = None,
        conversation_id: str | None = None,
        memory_id: str | None = None,
        target_memory_id: str | None = None,
        error: str | None = None,
    ) -> None:
        """Log the outcome of one reconciliation decision."""
        self.log(
            "memory_decision",
            owner_id=owner_id,
            conversation_id=conversation_id,
            action=action,
            error=error,
            reason=reason,
            memory_id=memory_id,
            target_memory_id=target_memory_id,
        )

    def log_pipeline_complete(
        self,
        *,
        owner_id: str,
        conversation_id: str | None,
        extracted: int,
        decisions: int,
        duration_ms: float,
    ) -> None:
        """Log the end of one conversation's extract-reconcile-execute run."""
        self.log(
            "pipeline_complete",
            owner_id=owner_id,
            conversation_id=conversation_id,
            duration_ms=duration_ms,
            extracted=extracted,
            decisions=decisions,
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
