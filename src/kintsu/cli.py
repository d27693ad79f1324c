"""Command-line interface for inspecting and driving the memory pipeline.

Provides subcommands for creating owners, remembering and recalling
facts, draining the processing queue and reading the audit trail.
"""

import argparse
import asyncio
import os
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from groq import AsyncGroq
from openai import AsyncOpenAI

from .config import MemoryConfig, config_from_env
from .conversations import ConversationStore
from .llm import GroqLLMGateway, OpenAIEmbeddingGateway
from .logging import configure_logger
from .memory import MemoryKind, MemoryManager, MemoryStore, ProcessingQueue, QueueStatus


@dataclass
class Runtime:
    """Fully wired memory pipeline."""

    config: MemoryConfig
    store: MemoryStore
    conversations: ConversationStore
    manager: MemoryManager
    queue: ProcessingQueue

    def close(self) -> None:
        self.store.close()
        self.conversations.close()


def build_runtime(
    config: MemoryConfig | None = None,
    groq_client: AsyncGroq | None = None,
    openai_client: AsyncOpenAI | None = None,
) -> Runtime:
    """Create stores, gateways, manager and queue from configuration."""
    config = config or config_from_env()
    event_logger = configure_logger(config.log_dir)

    store = MemoryStore(config.db_path)
    store.init_db()

    llm = GroqLLMGateway(
        groq_client or AsyncGroq(api_key=os.getenv("GROQ_API_KEY")),
        model=config.llm_model,
    )
    embeddings = OpenAIEmbeddingGateway(
        openai_client or AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY")),
        model=config.embedding_model,
        dimensions=config.embedding_dimensions,
    )
    manager = MemoryManager(
        store,
        llm,
        embeddings,
        max_messages=config.max_messages,
        similar_limit=config.similar_limit,
        search_limit=config.search_limit,
        event_logger=event_logger,
    )

    conversations = ConversationStore(config.db_path)
    conversations.init_db()
    queue = ProcessingQueue(
        store,
        manager,
        conversations,
        drain_delay=config.drain_delay,
        batch_size=config.queue_batch_size,
        event_logger=event_logger,
    )
    conversations.on_assistant_message = queue.enqueue

    return Runtime(
        config=config,
        store=store,
        conversations=conversations,
        manager=manager,
        queue=queue,
    )


def _format_time(timestamp: float | None) -> str:
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def cmd_init_owner(runtime: Runtime, args: argparse.Namespace) -> int:
    """Create the empty core memory blocks for an owner."""
    blocks = runtime.store.create_owner(args.owner)
    print(f"Owner {args.owner} has {len(blocks)} core memory blocks.")
    return 0


def cmd_remember(runtime: Runtime, args: argparse.Namespace) -> int:
    """Store one fact directly."""
    result = asyncio.run(
        runtime.manager.add_from_tool(args.owner, args.content, args.kind, args.keyword)
    )
    if not result.success:
        print(f"Error: not stored ({result.reason}).")
        return 1
    print(f"Stored memory {result.id}")
    return 0


def cmd_recall(runtime: Runtime, args: argparse.Namespace) -> int:
    """Search active facts by meaning."""
    results = asyncio.run(runtime.manager.recall(args.owner, args.query, limit=args.limit))
    if not results:
        print("No relevant memories found.")
        return 0

    for scored in results:
        print(f"{scored.score:.3f}  [{scored.fact.kind.value}] {scored.fact.content}")
    return 0


def cmd_core(runtime: Runtime, args: argparse.Namespace) -> int:
    """Show an owner's core memory blocks."""
    blocks = runtime.store.get_core_blocks(args.owner)
    if not blocks:
        print(f"Owner {args.owner} has no core memory blocks. Run init-owner first.")
        return 1

    for block in blocks:
        print(f"[{block.label.value}]: {block.content or '(empty)'}")
    return 0


def cmd_drain(runtime: Runtime, args: argparse.Namespace) -> int:
    """Process pending queue items once."""
    report = asyncio.run(runtime.queue.drain())
    print(
        f"Completed: {len(report.completed)}  Failed: {len(report.failed)}  "
        f"Skipped: {len(report.skipped)}"
    )
    return 1 if report.failed else 0


def cmd_queue(runtime: Runtime, args: argparse.Namespace) -> int:
    """List queue items."""
    status = QueueStatus(args.status) if args.status else None
    items = runtime.queue.list_items(status=status)
    if not items:
        print("Queue is empty.")
        return 0

    print(f"\n{'Item':<34} {'Conversation':<34} {'Status':<12} {'Created':<20} Processed")
    print("-" * 120)
    for item in items:
        print(
            f"{item.id:<34} {item.conversation_id:<34} {item.status.value:<12} "
            f"{_format_time(item.created_at):<20} {_format_time(item.processed_at)}"
        )
    print(f"\nTotal: {len(items)} item(s)")
    return 0


def cmd_audit(runtime: Runtime, args: argparse.Namespace) -> int:
    """Show the decision audit trail for an owner."""
    entries = runtime.store.list_audit(args.owner, conversation_id=args.conversation)
    if not entries:
        print("No audit entries.")
        return 0

    for entry in entries:
        target = f" -> {entry.target_memory_id}" if entry.target_memory_id else ""
        print(f"{_format_time(entry.created_at)}  {entry.action.value:<15}{target}  {entry.reason}")
        if entry.memory_content:
            print(f"    {entry.memory_content}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kintsu",
        description="Kintsu long-term memory pipeline",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_owner = subparsers.add_parser("init-owner", help="Create core memory blocks for an owner")
    init_owner.add_argument("owner")
    init_owner.set_defaults(func=cmd_init_owner)

    remember = subparsers.add_parser("remember", help="Store a fact directly")
    remember.add_argument("owner")
    remember.add_argument("content")
    remember.add_argument(
        "--kind",
        choices=[kind.value for kind in MemoryKind],
        default=MemoryKind.SEMANTIC.value,
    )
    remember.add_argument("--keyword", action="append", default=[])
    remember.set_defaults(func=cmd_remember)

    recall = subparsers.add_parser("recall", help="Search active memories")
    recall.add_argument("owner")
    recall.add_argument("query")
    recall.add_argument("--limit", type=int, default=5)
    recall.set_defaults(func=cmd_recall)

    core = subparsers.add_parser("core", help="Show core memory blocks")
    core.add_argument("owner")
    core.set_defaults(func=cmd_core)

    drain = subparsers.add_parser("drain", help="Process pending queue items now")
    drain.set_defaults(func=cmd_drain)

    queue = subparsers.add_parser("queue", help="List queue items")
    queue.add_argument("--status", choices=[status.value for status in QueueStatus])
    queue.set_defaults(func=cmd_queue)

    audit = subparsers.add_parser("audit", help="Show the decision audit trail")
    audit.add_argument("owner")
    audit.add_argument("--conversation")
    audit.set_defaults(func=cmd_audit)

    return parser


def run_cli(argv: Sequence[str] | None = None, runtime: Runtime | None = None) -> int:
    """Parse arguments and run one command.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)
    owns_runtime = runtime is None
    runtime = runtime or build_runtime()
    try:
        return args.func(runtime, args)
    finally:
        if owns_runtime:
            runtime.close()
