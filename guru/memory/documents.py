"""
Document Indexer and hybrid query engine.

Splits files into overlapping character windows, embeds each window
as a chunk, and answers similarity queries restricted by file type.
Reassembling a document reads its chunks with a filtered scan and
orders them by position.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .base import DOCUMENT_CHUNKS, DocumentChunkRecord, SearchResult, VectorStore
from .embeddings import EmbeddingService
from .query import DEFAULT_PAGE_SIZE, current_rows

logger = logging.getLogger("guru.memory.documents")

# Formats that need a text extractor this indexer does not ship
BINARY_FILE_TYPES = {"pdf", "doc", "docx", "png", "jpg", "jpeg", "gif", "zip"}

SEARCH_COLUMNS = [
    "id",
    "document_id",
    "chunk_id",
    "content",
    "position",
    "file_path",
    "file_type",
    "title",
    "metadata",
]


@dataclass
class IndexResult:
    """Outcome of indexing one file."""
    file_path: str
    success: bool
    chunks: int = 0
    document_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class IndexSummary:
    """Outcome of indexing several files."""
    indexed: int = 0
    failed: int = 0
    total_chunks: int = 0
    results: list[IndexResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.indexed > 0


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


def chunk_text(text: str, chunk_size: int = 1000, chunk_overlap: int = 200) -> list[str]:
    """
    Split text into windows of ``chunk_size`` characters that overlap by
    ``chunk_overlap``. The last window always reaches the end of the text.
    """
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    chunks = []
    start = 0
    while start < len(text):
        end = start + chunk_size
        chunks.append(text[start:end])
        if end >= len(text):
            break
        start += chunk_size - chunk_overlap
    return chunks


class DocumentIndexer:
    """Indexes documents as embedded chunks and queries them."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_service: EmbeddingService,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        max_content_chars: int = 5 * 1024 * 1024,
        default_max_results: int = 20,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_content_chars = max_content_chars
        self.default_max_results = default_max_results
        self.page_size = page_size

    async def add_document_chunk(self, chunk: DocumentChunkRecord) -> DocumentChunkRecord:
        """Embed a copy of the chunk and append it; returns the stored copy."""
        chunk = replace(
            chunk,
            vector=await self.embedding_service.embed(chunk.content),
            created_at=datetime.now(),
        )
        await self.vector_store.insert(DOCUMENT_CHUNKS.name, [chunk.to_row()])
        logger.debug(f"Document chunk added: {chunk.id}")
        return chunk

    async def search_documents(
        self,
        query: str,
        file_types: Optional[list[str]] = None,
        max_results: Optional[int] = None,
    ) -> list[SearchResult]:
        """
        Chunks closest to ``query``, optionally only of the given file types.
        """
        max_results = self.default_max_results if max_results is None else max_results
        query_vector = await self.embedding_service.embed(query)
        filter = {"file_type": list(file_types)} if file_types else None

        return await self.vector_store.nearest_neighbors(
            DOCUMENT_CHUNKS.name,
            query_vector,
            filter=filter,
            limit=max_results,
            columns=SEARCH_COLUMNS,
        )

    async def get_document_chunks(self, document_id: str) -> list[DocumentChunkRecord]:
        """All current chunks of a document, ordered by position."""
        rows = await current_rows(
            self.vector_store,
            DOCUMENT_CHUNKS.name,
            filter={"document_id": document_id},
            page_size=self.page_size,
        )
        chunks = [DocumentChunkRecord.from_row(row) for row in rows]
        chunks.sort(key=lambda c: c.position)
        return chunks

    async def index_file(self, file_path: str) -> IndexResult:
        """
        Read a text file, chunk it and store every chunk.

        Failures to read or store are reported in the result rather than
        raised, so one bad file does not stop a batch.
        """
        path = Path(file_path)
        file_type = path.suffix[1:].lower() or "txt"

        if file_type in BINARY_FILE_TYPES:
            return IndexResult(file_path, False, error=f"Unsupported file type: {file_type}")

        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.error(f"Failed to read {file_path}: {e}")
            return IndexResult(file_path, False, error=str(e))

        if len(content) > self.max_content_chars:
            return IndexResult(
                file_path,
                False,
                error=f"File content too large (max {self.max_content_chars} characters)",
            )

        document_id = f"doc-{int(datetime.now().timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"
        windows = chunk_text(content, self.chunk_size, self.chunk_overlap)

        try:
            vectors = await self.embedding_service.embed_batch(windows)
            now = datetime.now()
            chunks = [
                DocumentChunkRecord(
                    document_id=document_id,
                    chunk_id=f"chunk-{i}",
                    content=window,
                    position=i,
                    file_path=str(path),
                    file_type=file_type,
                    title=path.name,
                    chunk_tokens=estimate_tokens(window),
                    vector=vector,
                    created_at=now,
                    metadata={"file_name": path.name, "file_type": file_type},
                )
                for i, (window, vector) in enumerate(zip(windows, vectors))
            ]
            if chunks:
                await self.vector_store.insert(
                    DOCUMENT_CHUNKS.name, [c.to_row() for c in chunks]
                )
        except Exception as e:
            logger.error(f"Failed to index {file_path}: {e}")
            return IndexResult(file_path, False, document_id=document_id, error=str(e))

        logger.info(f"Indexed {file_path}: {len(chunks)} chunk(s) as {document_id}")
        return IndexResult(file_path, True, chunks=len(chunks), document_id=document_id)

    async def index_files(self, file_paths: list[str]) -> IndexSummary:
        summary = IndexSummary()
        for file_path in file_paths:
            result = await self.index_file(file_path)
            summary.results.append(result)
            if result.success:
                summary.indexed += 1
                summary.total_chunks += result.chunks
            else:
                summary.failed += 1
        return summary


def chunk_from_dict(data: dict[str, Any]) -> DocumentChunkRecord:
    """Build a chunk from tool-call arguments."""
    content = data["content"]
    return DocumentChunkRecord(
        document_id=data["document_id"],
        chunk_id=data["chunk_id"],
        content=content,
        position=int(data.get("position", 0)),
        file_path=data.get("file_path", ""),
        file_type=data.get("file_type", "txt"),
        title=data.get("title", ""),
        chunk_tokens=int(data.get("chunk_tokens") or estimate_tokens(content)),
        metadata=dict(data.get("metadata") or {}),
    )
