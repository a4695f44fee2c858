"""
Test fixtures and sample data for Guru tests.
"""

from datetime import datetime

from guru.memory.base import (
    EMBEDDING_DIMENSION,
    DocumentChunkRecord,
    InsightRecord,
    MemoryRecord,
    PatternRecord,
)


def constant_vector(value: float = 0.0) -> list[float]:
    """A vector with every component equal to ``value``."""
    return [value] * EMBEDDING_DIMENSION


def make_memory(
    content: str = "Prefers pytest fixtures over setUp methods",
    type: str = "fact",
    vector: list[float] = None,
    tags: list[str] = None,
    context: list[str] = None,
    confidence: float = 1.0,
    access_count: int = 1,
    created_at: datetime = None,
    id: str = None,
) -> MemoryRecord:
    """Create a sample MemoryRecord for testing."""
    record = MemoryRecord(
        content=content,
        type=type,
        vector=vector if vector is not None else constant_vector(0.5),
        tags=tags or [],
        context=context or [],
        confidence=confidence,
        access_count=access_count,
        created_at=created_at or datetime.now(),
    )
    if id is not None:
        record.id = id
    return record


def make_memories(count: int = 5, **kwargs) -> list[MemoryRecord]:
    """Create a list of distinct sample memories."""
    return [
        make_memory(content=f"Sample memory #{i}", **kwargs)
        for i in range(count)
    ]


def make_pattern(
    vector: list[float] = None,
    pattern_type: str = "document-access",
    entity_ids: list[str] = None,
    frequency: int = 0,
) -> PatternRecord:
    """Create a sample PatternRecord for testing."""
    return PatternRecord(
        pattern_type=pattern_type,
        entity_ids=entity_ids or ["doc-1"],
        vector=vector if vector is not None else constant_vector(0.0),
        frequency=frequency,
    )


def make_insight(
    text: str = "You have stored 12 memories.",
    category: str = "usage",
    dismissed: bool = False,
    id: str = None,
) -> InsightRecord:
    """Create a sample InsightRecord for testing."""
    insight = InsightRecord(
        insight_text=text,
        category=category,
        vector=constant_vector(0.25),
        dismissed=dismissed,
    )
    if id is not None:
        insight.id = id
    return insight


def make_chunk(
    document_id: str = "doc1",
    position: int = 0,
    content: str = None,
    file_type: str = "md",
    chunk_id: str = None,
) -> DocumentChunkRecord:
    """Create a sample DocumentChunkRecord for testing."""
    return DocumentChunkRecord(
        document_id=document_id,
        chunk_id=chunk_id or f"chunk-{position}",
        content=content or f"Content of {document_id} at position {position}",
        position=position,
        file_path=f"/docs/{document_id}.{file_type}",
        file_type=file_type,
        title=f"{document_id}.{file_type}",
        chunk_tokens=10,
        metadata={"file_type": file_type},
    )
