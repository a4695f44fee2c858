"""
Tool definitions for agents that use Guru's memory.

This module exposes the memory engine's operations as named tools with
JSON schema definitions, so an external agent can store and recall
memories, manage insights and query indexed documents.
"""

import json
import logging
from typing import Any

from .config import tool_context
from .memory import MemoryEngine
from .memory.documents import chunk_from_dict

logger = logging.getLogger("guru.tools")


def _tool(name: str, description: str, properties: dict, required: list[str] | None = None) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required or [],
            },
        },
    }


TOOL_DEFINITIONS = [
    _tool(
        "add_memory",
        "Store a new memory or insight.",
        {
            "content": {"type": "string", "description": "Content to remember"},
            "type": {
                "type": "string",
                "description": 'Type of memory (e.g., "insight", "pattern", "fact")',
            },
            "importance": {
                "type": "number",
                "description": "Importance score 0-1 (default: 0.5)",
            },
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Tags for categorization",
            },
        },
        ["content", "type"],
    ),
    _tool(
        "search_memories",
        "Search through stored memories by meaning.",
        {
            "query": {"type": "string", "description": "Search query"},
            "limit": {
                "type": "number",
                "description": "Maximum number of results (default: 10)",
            },
        },
        ["query"],
    ),
    _tool(
        "get_memory_stats",
        "Get statistics about the adaptive memory system.",
        {},
    ),
    _tool(
        "track_pattern",
        "Record an observation of a usage pattern; repeated patterns increase in frequency.",
        {
            "pattern_type": {"type": "string", "description": "Kind of pattern"},
            "entity_ids": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Ids of the entities involved",
            },
            "description": {"type": "string", "description": "What was observed"},
        },
        ["pattern_type", "description"],
    ),
    _tool(
        "generate_insights",
        "Analyze stored memories and produce new insights.",
        {},
    ),
    _tool(
        "list_insights",
        "List insights that have not been dismissed.",
        {},
    ),
    _tool(
        "dismiss_insight",
        "Dismiss an insight so it is no longer listed.",
        {"id": {"type": "string", "description": "Insight id"}},
        ["id"],
    ),
    _tool(
        "add_document_chunk",
        "Index one chunk of a document for retrieval.",
        {
            "chunk": {
                "type": "object",
                "description": "Chunk with document_id, chunk_id, content, position, "
                               "file_path, file_type, title, chunk_tokens and metadata",
                "properties": {
                    "document_id": {"type": "string"},
                    "chunk_id": {"type": "string"},
                    "content": {"type": "string"},
                    "position": {"type": "number"},
                    "file_path": {"type": "string"},
                    "file_type": {"type": "string"},
                    "title": {"type": "string"},
                    "chunk_tokens": {"type": "number"},
                    "metadata": {"type": "object"},
                },
                "required": ["document_id", "chunk_id", "content"],
            },
        },
        ["chunk"],
    ),
    _tool(
        "search_documents",
        "Search indexed document chunks by meaning, optionally by file type.",
        {
            "query": {"type": "string", "description": "Search query"},
            "fileTypes": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Only return chunks of these file types (e.g. ['md', 'pdf'])",
            },
            "maxResults": {
                "type": "number",
                "description": "Maximum number of results (default: 20)",
            },
        },
        ["query"],
    ),
    _tool(
        "get_document_chunks",
        "Get all chunks of an indexed document in order.",
        {"documentId": {"type": "string", "description": "Document id"}},
        ["documentId"],
    ),
    _tool(
        "index_file",
        "Index a text file from disk into the document store.",
        {"file_path": {"type": "string", "description": "Path to the file"}},
        ["file_path"],
    ),
]


class ToolRegistry:
    """
    Registry of memory tools available to an agent.
    """

    def __init__(self, engine: MemoryEngine):
        self.engine = engine
        self._handlers = {
            "add_memory": self._add_memory,
            "search_memories": self._search_memories,
            "get_memory_stats": self._get_memory_stats,
            "track_pattern": self._track_pattern,
            "generate_insights": self._generate_insights,
            "list_insights": self._list_insights,
            "dismiss_insight": self._dismiss_insight,
            "add_document_chunk": self._add_document_chunk,
            "search_documents": self._search_documents,
            "get_document_chunks": self._get_document_chunks,
            "index_file": self._index_file,
        }

    def get_definitions(self) -> list[dict[str, Any]]:
        """
        Get the JSON schema definitions for all available tools.
        """
        return [t for t in TOOL_DEFINITIONS if t["function"]["name"] in self._handlers]

    async def call(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        """
        Run a tool and return its structured result.

        Raises:
            KeyError: unknown tool or missing required argument
        """
        handler = self._handlers.get(tool_name)
        if handler is None:
            raise KeyError(f"Tool {tool_name} not found")

        token = tool_context.set(tool_name)
        try:
            logger.info(f"Executing tool: {tool_name} with args: {arguments}")
            return await handler(arguments or {})
        finally:
            tool_context.reset(token)

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> str:
        """
        Run a tool and return its result as JSON text.

        Errors are reported in the payload rather than raised.
        """
        try:
            result = await self.call(tool_name, arguments)
        except Exception as e:
            logger.error(f"Error executing tool {tool_name}: {e}")
            result = {"error": str(e)}
        return json.dumps(result, indent=2, default=str)

    async def _add_memory(self, args: dict[str, Any]) -> dict[str, Any]:
        record = await self.engine.memory.add_memory(
            content=args["content"],
            type=args["type"],
            importance=float(args.get("importance", 0.5)),
            tags=args.get("tags") or [],
            context=["user-added"],
        )
        return {"success": True, "memory_id": record.id}

    async def _search_memories(self, args: dict[str, Any]) -> dict[str, Any]:
        results = await self.engine.memory.search(args["query"], limit=int(args.get("limit", 10)))
        return {"results": [r.to_dict() for r in results], "count": len(results)}

    async def _get_memory_stats(self, args: dict[str, Any]) -> dict[str, int]:
        stats = await self.engine.memory.get_stats()
        return stats.to_dict()

    async def _track_pattern(self, args: dict[str, Any]) -> dict[str, Any]:
        pattern = await self.engine.patterns.observe(
            pattern_type=args["pattern_type"],
            entity_ids=args.get("entity_ids") or [],
            description=args["description"],
        )
        return {"success": True, "pattern_id": pattern.id, "frequency": pattern.frequency}

    async def _generate_insights(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        insights = await self.engine.insights.generate_insights()
        return [i.to_dict() for i in insights]

    async def _list_insights(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        insights = await self.engine.insights.list_insights()
        return [i.to_dict() for i in insights]

    async def _dismiss_insight(self, args: dict[str, Any]) -> dict[str, Any]:
        await self.engine.insights.dismiss_insight(args["id"])
        return {"success": True, "id": args["id"]}

    async def _add_document_chunk(self, args: dict[str, Any]) -> dict[str, Any]:
        chunk = await self.engine.documents.add_document_chunk(chunk_from_dict(args["chunk"]))
        return {"success": True, "id": chunk.id}

    async def _search_documents(self, args: dict[str, Any]) -> dict[str, Any]:
        max_results = args.get("maxResults")
        results = await self.engine.documents.search_documents(
            args["query"],
            file_types=args.get("fileTypes") or None,
            max_results=int(max_results) if max_results is not None else None,
        )
        return {"results": [r.to_dict() for r in results], "count": len(results)}

    async def _get_document_chunks(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        chunks = await self.engine.documents.get_document_chunks(args["documentId"])
        return [c.to_dict() for c in chunks]

    async def _index_file(self, args: dict[str, Any]) -> dict[str, Any]:
        result = await self.engine.documents.index_file(args["file_path"])
        return {
            "success": result.success,
            "chunks": result.chunks,
            "document_id": result.document_id,
            "error": result.error,
        }
