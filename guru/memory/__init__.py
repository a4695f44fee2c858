"""
Adaptive memory and retrieval engine.

A small persistent vector-indexed store holding memories, usage
patterns, generated insights and indexed document chunks, all
retrievable by nearest-neighbour search combined with scalar filters.
"""

from .base import (
    EMBEDDING_DIMENSION,
    DocumentChunkRecord,
    InsightRecord,
    InvalidFilterError,
    MemoryRecord,
    PatternRecord,
    SearchResult,
    VectorStore,
)
from .embeddings import EmbeddingService, HashEmbeddingService, create_embedding_service
from .chroma_store import ChromaVectorStore
from .documents import DocumentIndexer
from .insights import InsightGenerator
from .patterns import PatternTracker
from .memory_manager import (
    MemoryEngine,
    MemoryManager,
    MemoryStats,
    create_memory_engine,
    create_memory_engine_from_config,
)

__all__ = [
    "EMBEDDING_DIMENSION",
    "DocumentChunkRecord",
    "InsightRecord",
    "InvalidFilterError",
    "MemoryRecord",
    "PatternRecord",
    "SearchResult",
    "VectorStore",
    "EmbeddingService",
    "HashEmbeddingService",
    "create_embedding_service",
    "ChromaVectorStore",
    "DocumentIndexer",
    "InsightGenerator",
    "PatternTracker",
    "MemoryEngine",
    "MemoryManager",
    "MemoryStats",
    "create_memory_engine",
    "create_memory_engine_from_config",
]
