"""
Memory Manager - Orchestrates the adaptive memory system.

This is the high-level interface the tool layer uses. It handles:
- Turning content into embedded, layered memory records
- Semantic search over stored memories
- Row counts for the memory, pattern and insight tables
- Recording user interactions (document access, queries, spec/prompt usage)

The module also hosts the factory that wires one store, one embedding
service and the engine components together.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

from .base import INSIGHTS, MEMORIES, PATTERNS, MemoryRecord, SearchResult, VectorStore
from .chroma_store import ChromaVectorStore
from .documents import DocumentIndexer
from .embeddings import EmbeddingService, create_embedding_service
from .insights import InsightGenerator
from .patterns import PatternTracker

logger = logging.getLogger("guru.memory.manager")

# Columns returned by memory search
SEARCH_COLUMNS = [
    "id",
    "type",
    "content",
    "created_at",
    "confidence",
    "context",
    "tags",
    "metadata",
]


@dataclass
class MemoryStats:
    """Row counts of the engine's own tables."""
    memories: int = 0
    patterns: int = 0
    insights: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "memories": self.memories,
            "patterns": self.patterns,
            "insights": self.insights,
        }


class MemoryManager:
    """
    Layered memory storage with semantic retrieval.

    New memories always enter the short-term layer. ``last_accessed``
    and ``access_count`` are written once and are not refreshed by
    searches.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_service: EmbeddingService,
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        logger.info("MemoryManager created")

    async def add_memory(
        self,
        content: str,
        type: str,
        importance: float = 0.5,
        tags: Optional[list[str]] = None,
        context: Optional[list[str]] = None,
        metadata: Optional[dict[str, Any]] = None,
        related_ids: Optional[list[str]] = None,
    ) -> MemoryRecord:
        """
        Embed and store a new short-term memory.

        Args:
            content: The text to remember
            type: Free-form kind tag ("fact", "insight", "interaction", ...)
            importance: Caller-assigned weight, conventionally 0-1
            tags: Labels for categorization
            context: Opaque references (document ids, spec ids, ...)
            metadata: Arbitrary extra data
            related_ids: Ids of other memories this one refers to

        Returns:
            The stored MemoryRecord
        """
        vector = await self.embedding_service.embed(content)

        record = MemoryRecord(
            content=content,
            type=type,
            vector=vector,
            layer="short-term",
            confidence=1.0,
            relevance_score=1.0,
            access_count=1,
            importance=importance,
            tags=list(tags or []),
            context=list(context or []),
            related_ids=list(related_ids or []),
            metadata=dict(metadata or {}),
        )
        record.last_accessed = record.created_at

        await self.vector_store.insert(MEMORIES.name, [record.to_row()])
        logger.info(f"Memory added: {record.id}")
        return record

    async def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """
        Find the memories closest to ``query``.

        Returns an empty list when nothing is stored or the search fails.
        """
        query_vector = await self.embedding_service.embed(query)
        results = await self.vector_store.nearest_neighbors(
            MEMORIES.name,
            query_vector,
            limit=limit,
            columns=SEARCH_COLUMNS,
        )
        logger.debug(f"Memory search for {query!r} returned {len(results)} result(s)")
        return results

    async def get_stats(self) -> MemoryStats:
        """Row counts for memories, patterns and insights."""
        return MemoryStats(
            memories=await self.vector_store.count(MEMORIES.name),
            patterns=await self.vector_store.count(PATTERNS.name),
            insights=await self.vector_store.count(INSIGHTS.name),
        )

    async def track_document_access(self, document_id: str, document_name: str) -> MemoryRecord:
        return await self.add_memory(
            content=f"Accessed document: {document_name}",
            type="interaction",
            importance=1.0,
            context=[document_id],
            tags=["document", "access"],
            metadata={
                "documentId": document_id,
                "documentName": document_name,
                "action": "access",
            },
        )

    async def track_query(self, query: str, result_ids: list[str]) -> MemoryRecord:
        return await self.add_memory(
            content=f"Searched for: {query}",
            type="interaction",
            importance=1.0,
            context=list(result_ids),
            tags=["query", "search"],
            metadata={
                "query": query,
                "resultCount": len(result_ids),
                "resultIds": list(result_ids),
            },
        )

    async def track_spec_usage(
        self,
        spec_id: str,
        spec_name: str,
        action: Literal["create", "update", "view"],
    ) -> MemoryRecord:
        return await self.add_memory(
            content=f"{action} spec: {spec_name}",
            type="interaction",
            importance=1.0,
            context=[spec_id],
            tags=["spec", action],
            metadata={"specId": spec_id, "specName": spec_name, "action": action},
        )

    async def track_prompt_usage(
        self,
        prompt_id: str,
        prompt_name: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> MemoryRecord:
        return await self.add_memory(
            content=f"Used prompt: {prompt_name}",
            type="interaction",
            importance=1.0,
            context=[prompt_id],
            tags=["prompt", "usage"],
            metadata={
                "promptId": prompt_id,
                "promptName": prompt_name,
                "variables": dict(variables or {}),
            },
        )

    async def track_preference(self, key: str, value: Any, context: str) -> MemoryRecord:
        return await self.add_memory(
            content=f"Preference: {key} = {json.dumps(value)}",
            type="preference",
            importance=1.0,
            context=[context],
            tags=["preference", key],
            metadata={"key": key, "value": value, "context": context},
        )


@dataclass
class MemoryEngine:
    """
    The engine's components sharing one store and one embedding service.

    Created once at application start and passed to consumers. The
    store connects on first use.
    """
    store: VectorStore
    embedding_service: EmbeddingService
    memory: MemoryManager
    patterns: PatternTracker
    insights: InsightGenerator
    documents: DocumentIndexer

    async def connect(self) -> None:
        """Open the store now rather than on first use."""
        await self.store.connect()
        stats = await self.memory.get_stats()
        logger.info(
            f"Memory engine ready: {stats.memories} memories, "
            f"{stats.patterns} patterns, {stats.insights} insights"
        )

    async def close(self) -> None:
        await self.store.close()
        logger.info("Memory engine closed")


def create_vector_store(
    store_type: Literal["chroma", "pgvector"] = "chroma",
    path: str = "./guru_store",
    postgres_url: str = "",
) -> VectorStore:
    """
    Create the configured vector store backend (not yet connected).

    Args:
        store_type: "chroma" for a local directory, "pgvector" for PostgreSQL
        path: Directory for ChromaDB storage
        postgres_url: Required for pgvector store
    """
    if store_type == "chroma":
        return ChromaVectorStore(persist_directory=path)
    elif store_type == "pgvector":
        if not postgres_url:
            raise ValueError("postgres_url required for pgvector store")
        from .pgvector_store import PgVectorStore
        return PgVectorStore(connection_string=postgres_url)
    else:
        raise ValueError(f"Unknown store type: {store_type}")


def create_memory_engine(
    store: Optional[VectorStore] = None,
    embedding_service: Optional[EmbeddingService] = None,
    store_type: Literal["chroma", "pgvector"] = "chroma",
    store_path: str = "./guru_store",
    postgres_url: str = "",
    embedding_provider: Literal["hash", "local", "openai"] = "hash",
    embedding_model: str = "",
    openai_api_key: str = "",
    embedding_fallback: bool = True,
    pattern_match_threshold: Optional[float] = None,
    insight_rules: Optional[list[str]] = None,
    insight_list_limit: int = 20,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
    max_content_chars: int = 5 * 1024 * 1024,
    document_max_results: int = 20,
    scan_page_size: int = 500,
) -> MemoryEngine:
    """
    Factory function to wire up a MemoryEngine.

    An explicit ``store`` or ``embedding_service`` takes precedence over
    the corresponding settings.

    Returns:
        A MemoryEngine whose store has not been opened yet
    """
    if embedding_service is None:
        embedding_service = create_embedding_service(
            provider=embedding_provider,
            api_key=openai_api_key,
            model=embedding_model,
            fallback=embedding_fallback,
        )

    if store is None:
        store = create_vector_store(
            store_type=store_type,
            path=store_path,
            postgres_url=postgres_url,
        )

    return MemoryEngine(
        store=store,
        embedding_service=embedding_service,
        memory=MemoryManager(store, embedding_service),
        patterns=PatternTracker(
            store,
            embedding_service,
            match_threshold=pattern_match_threshold,
        ),
        insights=InsightGenerator(
            store,
            embedding_service,
            rules=insight_rules,
            list_limit=insight_list_limit,
            page_size=scan_page_size,
        ),
        documents=DocumentIndexer(
            store,
            embedding_service,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            max_content_chars=max_content_chars,
            default_max_results=document_max_results,
            page_size=scan_page_size,
        ),
    )


def create_memory_engine_from_config(config) -> MemoryEngine:
    """Build a MemoryEngine from the application Config."""
    return create_memory_engine(
        store_type=config.store.store_type,
        store_path=config.store.path,
        postgres_url=config.store.postgres_url,
        embedding_provider=config.embedding.provider,
        embedding_model=config.embedding.model,
        openai_api_key=config.embedding.api_key,
        embedding_fallback=config.embedding.fallback,
        pattern_match_threshold=config.patterns.match_threshold,
        insight_rules=config.insights.rules,
        insight_list_limit=config.insights.list_limit,
        chunk_size=config.documents.chunk_size,
        chunk_overlap=config.documents.chunk_overlap,
        max_content_chars=config.documents.max_content_chars,
        document_max_results=config.documents.max_results,
        scan_page_size=config.store.scan_page_size,
    )
