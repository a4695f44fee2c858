"""
Command-line access to the Guru memory engine.

Every subcommand goes through the same tool registry an agent uses and
prints the structured result as JSON:

    guru stats
    guru add "Prefers pytest over unittest" --type preference --tag testing
    guru search "testing preferences" --limit 5
    guru insights --generate
    guru dismiss ins-1718000000000-abc123def
    guru index docs/architecture.md notes.txt
    guru docs "vector store" --types md pdf
    guru chunks doc-1718000000000-abc123def
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from .config import config
from .memory import create_memory_engine_from_config
from .tools import ToolRegistry

logger = logging.getLogger("guru.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guru",
        description="Store, search and analyze Guru's adaptive memory.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="Row counts of the memory tables")

    add = sub.add_parser("add", help="Store a memory")
    add.add_argument("content")
    add.add_argument("--type", default="fact")
    add.add_argument("--importance", type=float, default=0.5)
    add.add_argument("--tag", action="append", dest="tags", default=[])

    search = sub.add_parser("search", help="Search memories")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10)

    insights = sub.add_parser("insights", help="List insights")
    insights.add_argument(
        "--generate", action="store_true", help="Generate new insights first"
    )

    dismiss = sub.add_parser("dismiss", help="Dismiss an insight")
    dismiss.add_argument("id")

    index = sub.add_parser("index", help="Index text files")
    index.add_argument("paths", nargs="+")

    docs = sub.add_parser("docs", help="Search indexed documents")
    docs.add_argument("query")
    docs.add_argument("--types", nargs="+", default=None)
    docs.add_argument("--max-results", type=int, default=None)

    chunks = sub.add_parser("chunks", help="Show a document's chunks in order")
    chunks.add_argument("document_id")

    return parser


def to_tool_calls(args: argparse.Namespace) -> list[tuple[str, dict[str, Any]]]:
    """Translate parsed arguments into the tool calls that implement them."""
    if args.command == "stats":
        return [("get_memory_stats", {})]
    if args.command == "add":
        return [("add_memory", {
            "content": args.content,
            "type": args.type,
            "importance": args.importance,
            "tags": args.tags,
        })]
    if args.command == "search":
        return [("search_memories", {"query": args.query, "limit": args.limit})]
    if args.command == "insights":
        calls = [("generate_insights", {})] if args.generate else []
        return calls + [("list_insights", {})]
    if args.command == "dismiss":
        return [("dismiss_insight", {"id": args.id})]
    if args.command == "index":
        return [("index_file", {"file_path": path}) for path in args.paths]
    if args.command == "docs":
        call_args: dict[str, Any] = {"query": args.query}
        if args.types:
            call_args["fileTypes"] = args.types
        if args.max_results is not None:
            call_args["maxResults"] = args.max_results
        return [("search_documents", call_args)]
    if args.command == "chunks":
        return [("get_document_chunks", {"documentId": args.document_id})]
    raise ValueError(f"Unknown command: {args.command}")


async def run(args: argparse.Namespace) -> bool:
    """
    Execute a parsed command.

    Returns:
        True if every tool call succeeded.
    """
    config.setup_logging()

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return False

    engine = create_memory_engine_from_config(config)
    registry = ToolRegistry(engine)

    try:
        await engine.connect()
        for tool_name, tool_args in to_tool_calls(args):
            result = await registry.call(tool_name, tool_args)
            print(json.dumps(result, indent=2, default=str))
        return True
    finally:
        await engine.close()


def main(argv: Optional[list[str]] = None):
    """Entry point for the application."""
    args = build_parser().parse_args(argv)

    try:
        success = asyncio.run(run(args))
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(130)
    except Exception as e:
        print(f"\nFatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
