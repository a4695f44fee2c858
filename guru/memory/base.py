"""
Base interfaces and data structures for the adaptive memory engine.

Defines the record types stored by the engine, the schema of each
table, and the abstract contract that vector store backends implement.

Every table is append-only: a "change" to a record is a new row with
the same id. Readers that care about the current state of a record go
through the reconciliation step in ``query.py``.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

# all-MiniLM-L6-v2 width; every stored vector has exactly this length
EMBEDDING_DIMENSION = 384

MemoryLayer = Literal["short-term", "long-term"]

# A filter maps field name -> value (equality) or list of values (any-of).
# Several keys are combined with AND.
Filter = dict[str, Any]

# Bookkeeping key stamped on every row by the store at write time
WRITTEN_AT = "_written_at"


class InvalidFilterError(ValueError):
    """Raised by a store when a filter does not fit the table schema."""


def _new_id(prefix: str) -> str:
    return f"{prefix}-{int(datetime.now().timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"


def _check_vector(vector: list[float], what: str) -> list[float]:
    if len(vector) != EMBEDDING_DIMENSION:
        raise ValueError(
            f"{what} vector has {len(vector)} dimensions, expected {EMBEDDING_DIMENSION}"
        )
    return [float(v) for v in vector]


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return datetime.now()


@dataclass(frozen=True)
class TableSchema:
    """
    Field layout of one table.

    ``fields`` maps each column to its kind: "str", "int", "float",
    "bool", "datetime" or "json" (lists and dicts). The vector column
    is implicit. ``text_field`` names the column a backend may keep as
    the row's document text.
    """
    name: str
    text_field: str
    fields: dict[str, str]

    def has_field(self, name: str) -> bool:
        return name == "id" or name in self.fields


MEMORIES = TableSchema(
    name="memories",
    text_field="content",
    fields={
        "type": "str",
        "layer": "str",
        "content": "str",
        "created_at": "datetime",
        "last_accessed": "datetime",
        "access_count": "int",
        "confidence": "float",
        "relevance_score": "float",
        "importance": "float",
        "context": "json",
        "related_ids": "json",
        "tags": "json",
        "metadata": "json",
    },
)

PATTERNS = TableSchema(
    name="patterns",
    text_field="pattern_type",
    fields={
        "pattern_type": "str",
        "entity_ids": "json",
        "frequency": "int",
        "first_seen": "datetime",
        "last_seen": "datetime",
        "metadata": "json",
    },
)

INSIGHTS = TableSchema(
    name="insights",
    text_field="insight_text",
    fields={
        "insight_text": "str",
        "category": "str",
        "confidence": "float",
        "created_at": "datetime",
        "dismissed": "bool",
        "metadata": "json",
    },
)

DOCUMENT_CHUNKS = TableSchema(
    name="document_chunks",
    text_field="content",
    fields={
        "document_id": "str",
        "chunk_id": "str",
        "content": "str",
        "position": "int",
        "file_path": "str",
        "file_type": "str",
        "title": "str",
        "created_at": "datetime",
        "chunk_tokens": "int",
        "metadata": "json",
    },
)

TABLES: dict[str, TableSchema] = {
    schema.name: schema for schema in (MEMORIES, PATTERNS, INSIGHTS, DOCUMENT_CHUNKS)
}


def validate_filter(schema: TableSchema, filter: Optional[Filter]) -> Optional[Filter]:
    """
    Check a filter against a table schema.

    Numeric values are coerced to the column's kind, so ``1.0`` matches
    an int column holding ``1``.

    Returns:
        The coerced filter, or None for an empty one

    Raises:
        InvalidFilterError: unknown field, non-scalar value, empty any-of
            list or a fractional value for an int column
    """
    if not filter:
        return None
    if not isinstance(filter, dict):
        raise InvalidFilterError(f"Filter must be a mapping, got {type(filter).__name__}")

    coerced: Filter = {}
    for key, value in filter.items():
        if not schema.has_field(key):
            raise InvalidFilterError(f"Unknown field '{key}' for table '{schema.name}'")
        kind = schema.fields.get(key, "str")
        if kind == "json":
            raise InvalidFilterError(f"Field '{key}' is not filterable")
        is_list = isinstance(value, (list, tuple))
        values = list(value) if is_list else [value]
        if not values:
            raise InvalidFilterError(f"Empty value list for field '{key}'")
        for v in values:
            if not isinstance(v, (str, int, float, bool)):
                raise InvalidFilterError(
                    f"Filter value for '{key}' must be a scalar, got {type(v).__name__}"
                )
        values = [_coerce_filter_value(key, kind, v) for v in values]
        coerced[key] = values if is_list else values[0]
    return coerced


def _coerce_filter_value(key: str, kind: str, value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if kind == "int" and isinstance(value, float):
        if not value.is_integer():
            raise InvalidFilterError(f"Field '{key}' holds integers, got {value}")
        return int(value)
    if kind == "float" and isinstance(value, int):
        return float(value)
    return value


@dataclass
class SearchResult:
    """A nearest-neighbour hit: the stored row and its distance to the query."""
    row: dict[str, Any]
    distance: float  # L2, lower is closer

    @property
    def id(self) -> str:
        return self.row.get("id", "")

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view of the hit, without the vector."""
        data = {
            k: (v.isoformat() if isinstance(v, datetime) else v)
            for k, v in self.row.items()
            if k != "vector" and not k.startswith("_")
        }
        data["distance"] = self.distance
        return data


@dataclass
class MemoryRecord:
    """A single remembered fact, interaction or preference."""
    content: str
    type: str
    vector: list[float] = field(default_factory=list)
    id: str = field(default_factory=lambda: _new_id("mem"))
    layer: MemoryLayer = "short-term"
    created_at: datetime = field(default_factory=datetime.now)
    last_accessed: datetime = field(default_factory=datetime.now)
    access_count: int = 1
    confidence: float = 1.0
    relevance_score: float = 1.0
    importance: float = 0.5
    context: list[str] = field(default_factory=list)
    related_ids: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # tags behave as a set but keep first-seen order
        self.tags = list(dict.fromkeys(self.tags))

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "layer": self.layer,
            "content": self.content,
            "vector": _check_vector(self.vector, "Memory"),
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
            "access_count": self.access_count,
            "confidence": self.confidence,
            "relevance_score": self.relevance_score,
            "importance": self.importance,
            "context": list(self.context),
            "related_ids": list(self.related_ids),
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MemoryRecord":
        return cls(
            id=row["id"],
            type=row.get("type", ""),
            layer=row.get("layer", "short-term"),
            content=row.get("content", ""),
            vector=list(row.get("vector") or []),
            created_at=_as_datetime(row.get("created_at")),
            last_accessed=_as_datetime(row.get("last_accessed")),
            access_count=row.get("access_count", 1),
            confidence=row.get("confidence", 1.0),
            relevance_score=row.get("relevance_score", 1.0),
            importance=row.get("importance", 0.5),
            context=list(row.get("context") or []),
            related_ids=list(row.get("related_ids") or []),
            tags=list(row.get("tags") or []),
            metadata=dict(row.get("metadata") or {}),
        )


@dataclass
class PatternRecord:
    """A recurring usage pattern and how often it has been seen."""
    pattern_type: str
    entity_ids: list[str] = field(default_factory=list)
    vector: list[float] = field(default_factory=list)
    id: str = field(default_factory=lambda: _new_id("pat"))
    frequency: int = 0
    first_seen: datetime = field(default_factory=datetime.now)
    last_seen: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        if self.frequency < 0:
            raise ValueError(f"Pattern frequency must be non-negative, got {self.frequency}")
        return {
            "id": self.id,
            "pattern_type": self.pattern_type,
            "entity_ids": list(self.entity_ids),
            "frequency": self.frequency,
            "vector": _check_vector(self.vector, "Pattern"),
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PatternRecord":
        return cls(
            id=row["id"],
            pattern_type=row.get("pattern_type", ""),
            entity_ids=list(row.get("entity_ids") or []),
            frequency=row.get("frequency", 0),
            vector=list(row.get("vector") or []),
            first_seen=_as_datetime(row.get("first_seen")),
            last_seen=_as_datetime(row.get("last_seen")),
            metadata=dict(row.get("metadata") or {}),
        )


@dataclass
class InsightRecord:
    """A human-readable observation synthesized from the memory population."""
    insight_text: str
    category: str
    vector: list[float] = field(default_factory=list)
    id: str = field(default_factory=lambda: _new_id("ins"))
    confidence: float = 1.0
    created_at: datetime = field(default_factory=datetime.now)
    dismissed: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "insight_text": self.insight_text,
            "category": self.category,
            "vector": _check_vector(self.vector, "Insight"),
            "confidence": self.confidence,
            "created_at": self.created_at,
            "dismissed": self.dismissed,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "InsightRecord":
        return cls(
            id=row["id"],
            insight_text=row.get("insight_text", ""),
            category=row.get("category", ""),
            vector=list(row.get("vector") or []),
            confidence=row.get("confidence", 1.0),
            created_at=_as_datetime(row.get("created_at")),
            dismissed=bool(row.get("dismissed", False)),
            metadata=dict(row.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "insight_text": self.insight_text,
            "category": self.category,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
            "dismissed": self.dismissed,
            "metadata": self.metadata,
        }


@dataclass
class DocumentChunkRecord:
    """
    One bounded slice of an external document.

    The id is derived from the owning document and the chunk id, so
    re-indexing a chunk appends a row that supersedes the earlier one.
    """
    document_id: str
    chunk_id: str
    content: str
    position: int
    file_path: str = ""
    file_type: str = "txt"
    title: str = ""
    chunk_tokens: int = 0
    vector: list[float] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return f"{self.document_id}-{self.chunk_id}"

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "chunk_id": self.chunk_id,
            "content": self.content,
            "vector": _check_vector(self.vector, "Chunk"),
            "position": self.position,
            "file_path": self.file_path,
            "file_type": self.file_type,
            "title": self.title,
            "created_at": self.created_at,
            "chunk_tokens": self.chunk_tokens,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DocumentChunkRecord":
        return cls(
            document_id=row.get("document_id", ""),
            chunk_id=row.get("chunk_id", ""),
            content=row.get("content", ""),
            position=row.get("position", 0),
            file_path=row.get("file_path", ""),
            file_type=row.get("file_type", ""),
            title=row.get("title", ""),
            chunk_tokens=row.get("chunk_tokens", 0),
            vector=list(row.get("vector") or []),
            created_at=_as_datetime(row.get("created_at")),
            metadata=dict(row.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "chunk_id": self.chunk_id,
            "content": self.content,
            "position": self.position,
            "file_path": self.file_path,
            "file_type": self.file_type,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "chunk_tokens": self.chunk_tokens,
            "metadata": self.metadata,
        }


class VectorStore(ABC):
    """
    Abstract interface for vector storage backends.

    Implementations: ChromaDB (local directory), pgvector (PostgreSQL).

    Connection is deferred until first use. Reads never raise once the
    store is open: they log and return an empty result. Writes and the
    initial connection propagate their errors.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the store and create any missing tables. Idempotent."""
        pass

    @abstractmethod
    async def insert(self, table: str, records: list[dict[str, Any]]) -> None:
        """
        Append rows to a table. Never overwrites an existing row.

        Args:
            table: Table name (one of TABLES)
            records: Rows as produced by a record's ``to_row()``
        """
        pass

    @abstractmethod
    async def nearest_neighbors(
        self,
        table: str,
        query_vector: list[float],
        filter: Optional[Filter] = None,
        limit: int = 10,
        columns: Optional[list[str]] = None,
    ) -> list[SearchResult]:
        """
        Rank rows by distance to ``query_vector``.

        Args:
            table: Table name
            query_vector: Vector to compare against
            filter: Optional equality / any-of filter
            limit: Maximum number of rows
            columns: Optional projection; ``id`` is always included

        Returns:
            Hits ordered closest first. Order among equal distances is
            unspecified.
        """
        pass

    @abstractmethod
    async def scan(
        self,
        table: str,
        filter: Optional[Filter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Return rows matching ``filter`` in insertion order, without ranking."""
        pass

    @abstractmethod
    async def count(self, table: str) -> int:
        """Total number of rows, duplicate ids included."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources."""
        pass
