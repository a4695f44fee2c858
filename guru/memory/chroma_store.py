"""
ChromaDB Vector Store Implementation.

ChromaDB is the default backend for the desktop app:
- No server required
- Stores everything in a local directory
- Built-in persistence

Each table is a collection. Chroma keys rows by a unique id, so every
appended row gets its own random key and the record id lives in the
row metadata; several rows may share a record id.
"""

import json
import logging
import math
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .base import (
    EMBEDDING_DIMENSION,
    TABLES,
    WRITTEN_AT,
    Filter,
    SearchResult,
    TableSchema,
    VectorStore,
    validate_filter,
)

logger = logging.getLogger("guru.memory.chroma")


class ChromaVectorStore(VectorStore):
    """
    ChromaDB implementation of the vector store.

    Collections are created lazily on the first call that needs one.
    """

    def __init__(
        self,
        persist_directory: str = "./guru_store",
        tables: Optional[dict[str, TableSchema]] = None,
    ):
        self.persist_directory = Path(persist_directory)
        self.tables = tables or TABLES
        self._client = None
        self._collections: dict[str, Any] = {}
        self._last_stamp = 0
        logger.info(f"ChromaVectorStore configured with directory: {persist_directory}")

    async def connect(self) -> None:
        """Open the persistent client and create missing collections."""
        if self._client is not None:
            return

        try:
            import chromadb
            from chromadb.config import Settings
        except ImportError:
            raise RuntimeError(
                "chromadb not installed. Install with: pip install chromadb"
            )

        self.persist_directory.mkdir(parents=True, exist_ok=True)

        client = chromadb.PersistentClient(
            path=str(self.persist_directory),
            settings=Settings(
                anonymized_telemetry=False,
                allow_reset=True,
            ),
        )

        # Older chromadb returns Collection objects, newer returns names
        existing = {
            c if isinstance(c, str) else c.name for c in client.list_collections()
        }

        collections = {}
        for name, schema in self.tables.items():
            if name not in existing:
                logger.info(f"Creating table '{name}'")
            collections[name] = client.get_or_create_collection(
                name=name,
                metadata={
                    "hnsw:space": "l2",
                    "fields": ",".join(schema.fields),
                },
            )

        self._client = client
        self._collections = collections
        logger.info(
            f"ChromaDB opened at {self.persist_directory} with tables: {', '.join(collections)}"
        )

    async def _collection(self, table: str):
        if table not in self.tables:
            raise ValueError(f"Unknown table: {table}")
        await self.connect()
        return self._collections[table]

    def _next_stamp(self) -> int:
        self._last_stamp = max(time.time_ns(), self._last_stamp + 1)
        return self._last_stamp

    def _encode_metadata(self, schema: TableSchema, row: dict[str, Any]) -> dict[str, Any]:
        """Flatten a row into Chroma's scalar-only metadata."""
        metadata: dict[str, Any] = {"id": row["id"], WRITTEN_AT: self._next_stamp()}
        for name, kind in schema.fields.items():
            value = row.get(name)
            if value is None:
                continue
            if kind == "json":
                metadata[name] = json.dumps(value)
            elif kind == "datetime":
                metadata[name] = value.isoformat() if isinstance(value, datetime) else str(value)
            elif kind == "bool":
                metadata[name] = bool(value)
            elif kind == "int":
                metadata[name] = int(value)
            elif kind == "float":
                metadata[name] = float(value)
            else:
                metadata[name] = str(value)
        return metadata

    def _decode_row(
        self,
        schema: TableSchema,
        metadata: dict[str, Any],
        embedding=None,
    ) -> dict[str, Any]:
        """Convert Chroma metadata (and optional embedding) back to a row."""
        row: dict[str, Any] = {"id": metadata["id"], WRITTEN_AT: metadata.get(WRITTEN_AT, 0)}
        for name, kind in schema.fields.items():
            if name not in metadata:
                continue
            value = metadata[name]
            if kind == "json":
                row[name] = json.loads(value)
            elif kind == "datetime":
                row[name] = datetime.fromisoformat(value)
            else:
                row[name] = value
        if embedding is not None:
            row["vector"] = [float(v) for v in embedding]
        return row

    @staticmethod
    def _where(filter: Optional[Filter]) -> Optional[dict]:
        """Translate a validated filter into a Chroma where clause."""
        if not filter:
            return None

        clauses = []
        for key, value in filter.items():
            if isinstance(value, (list, tuple)):
                values = list(value)
                if len(values) == 1:
                    clauses.append({key: {"$eq": values[0]}})
                else:
                    clauses.append({key: {"$in": values}})
            else:
                clauses.append({key: {"$eq": value}})

        return clauses[0] if len(clauses) == 1 else {"$and": clauses}

    @staticmethod
    def _project(row: dict[str, Any], columns: Optional[list[str]]) -> dict[str, Any]:
        if not columns:
            return row
        keep = set(columns) | {"id", WRITTEN_AT}
        return {k: v for k, v in row.items() if k in keep}

    async def insert(self, table: str, records: list[dict[str, Any]]) -> None:
        """Append rows. Errors propagate to the caller."""
        if not records:
            return

        collection = await self._collection(table)
        schema = self.tables[table]

        ids, embeddings, documents, metadatas = [], [], [], []
        for row in records:
            vector = row.get("vector") or []
            if len(vector) != EMBEDDING_DIMENSION:
                raise ValueError(
                    f"Row {row.get('id')} has a {len(vector)}-dim vector, "
                    f"expected {EMBEDDING_DIMENSION}"
                )
            ids.append(uuid.uuid4().hex)
            embeddings.append([float(v) for v in vector])
            documents.append(str(row.get(schema.text_field) or ""))
            metadatas.append(self._encode_metadata(schema, row))

        batch_size = self._client.get_max_batch_size()
        for start in range(0, len(ids), batch_size):
            end = start + batch_size
            collection.add(
                ids=ids[start:end],
                embeddings=embeddings[start:end],
                documents=documents[start:end],
                metadatas=metadatas[start:end],
            )
        logger.debug(f"Appended {len(records)} row(s) to {table}")

    async def nearest_neighbors(
        self,
        table: str,
        query_vector: list[float],
        filter: Optional[Filter] = None,
        limit: int = 10,
        columns: Optional[list[str]] = None,
    ) -> list[SearchResult]:
        """Rank rows by L2 distance. Any failure yields an empty list."""
        collection = await self._collection(table)
        schema = self.tables[table]

        try:
            where = self._where(validate_filter(schema, filter))

            total = collection.count()
            if total == 0 or limit <= 0:
                return []

            include = ["metadatas", "distances"]
            want_vectors = not columns or "vector" in columns
            if want_vectors:
                include.append("embeddings")

            results = collection.query(
                query_embeddings=[[float(v) for v in query_vector]],
                n_results=min(limit, total),
                where=where,
                include=include,
            )

            hits = []
            ids = results["ids"][0] if results["ids"] else []
            for i in range(len(ids)):
                embedding = results["embeddings"][0][i] if want_vectors else None
                row = self._decode_row(schema, results["metadatas"][0][i], embedding)
                hits.append(SearchResult(
                    row=self._project(row, columns),
                    # Chroma reports squared L2
                    distance=math.sqrt(max(float(results["distances"][0][i]), 0.0)),
                ))

            hits.sort(key=lambda h: h.distance)
            return hits[:limit]

        except Exception as e:
            logger.error(f"Error searching {table}: {e}")
            return []

    async def scan(
        self,
        table: str,
        filter: Optional[Filter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Filtered scan in insertion order. Any failure yields an empty list."""
        collection = await self._collection(table)
        schema = self.tables[table]

        try:
            where = self._where(validate_filter(schema, filter))

            kwargs: dict[str, Any] = {
                "where": where,
                "include": ["metadatas", "embeddings"],
            }
            if limit is not None:
                kwargs["limit"] = limit
            if offset:
                kwargs["offset"] = offset

            results = collection.get(**kwargs)

            embeddings = results.get("embeddings")
            rows = []
            for i, metadata in enumerate(results["metadatas"] or []):
                embedding = embeddings[i] if embeddings is not None else None
                rows.append(self._decode_row(schema, metadata, embedding))
            return rows

        except Exception as e:
            logger.error(f"Error scanning {table}: {e}")
            return []

    async def count(self, table: str) -> int:
        """Row count including superseded rows."""
        collection = await self._collection(table)
        try:
            return collection.count()
        except Exception as e:
            logger.error(f"Error counting {table}: {e}")
            return 0

    async def close(self) -> None:
        """Clean up resources."""
        # ChromaDB PersistentClient handles cleanup automatically
        self._client = None
        self._collections = {}
        logger.info("ChromaDB connection closed")
