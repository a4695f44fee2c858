"""
Unit tests for guru/memory/chroma_store.py

Tests the ChromaDB backend against a real store in a temporary directory.
"""

import math
from unittest.mock import patch

import pytest

from guru.memory import ChromaVectorStore
from guru.memory.base import WRITTEN_AT
from tests.fixtures import (
    constant_vector,
    make_chunk,
    make_insight,
    make_memory,
    make_pattern,
)


class TestChromaConnect:
    """Tests for opening the store."""

    @pytest.mark.asyncio
    async def test_connect_creates_directory_and_tables(self, chroma_store, store_path):
        """Test connecting creates the directory and empty tables."""
        await chroma_store.connect()

        assert store_path.exists()
        assert set(chroma_store._collections) == {
            "memories", "patterns", "insights", "document_chunks",
        }
        assert await chroma_store.count("memories") == 0

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, chroma_store):
        """Test a second connect keeps the same client."""
        await chroma_store.connect()
        client = chroma_store._client

        await chroma_store.connect()
        assert chroma_store._client is client

    @pytest.mark.asyncio
    async def test_first_use_connects_lazily(self, chroma_store):
        """Test reads open the store on demand."""
        assert chroma_store._client is None
        assert await chroma_store.scan("memories") == []
        assert chroma_store._client is not None

    @pytest.mark.asyncio
    async def test_data_persists_across_instances(self, store_path):
        """Test a reopened store sees earlier rows."""
        first = ChromaVectorStore(persist_directory=str(store_path))
        await first.insert("memories", [make_memory(content="persisted").to_row()])
        await first.close()

        second = ChromaVectorStore(persist_directory=str(store_path))
        rows = await second.scan("memories")

        assert [r["content"] for r in rows] == ["persisted"]

    @pytest.mark.asyncio
    async def test_unknown_table_raises(self, chroma_store):
        """Test naming a table that does not exist is a programming error."""
        with pytest.raises(ValueError, match="Unknown table"):
            await chroma_store.count("nope")


class TestChromaInsert:
    """Tests for appending rows."""

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_appended(self, chroma_store):
        """Test inserting the same id twice keeps both rows."""
        record = make_memory(id="mem-fixed")
        await chroma_store.insert("memories", [record.to_row()])
        await chroma_store.insert("memories", [record.to_row()])

        assert await chroma_store.count("memories") == 2

    @pytest.mark.asyncio
    async def test_write_stamps_increase(self, chroma_store):
        """Test every row gets a strictly larger write stamp."""
        rows = [make_memory().to_row() for _ in range(3)]
        await chroma_store.insert("memories", rows)

        stamps = [r[WRITTEN_AT] for r in await chroma_store.scan("memories")]
        assert len(set(stamps)) == 3

    @pytest.mark.asyncio
    async def test_wrong_dimension_raises(self, chroma_store):
        """Test writes propagate errors instead of failing open."""
        row = make_memory().to_row()
        row["vector"] = [0.1] * 3

        with pytest.raises(ValueError, match="expected 384"):
            await chroma_store.insert("memories", [row])

    @pytest.mark.asyncio
    async def test_fields_round_trip(self, chroma_store):
        """Test lists, dicts, datetimes and booleans survive storage."""
        record = make_memory(tags=["a", "b"], context=["doc-1"])
        record.metadata = {"nested": {"k": 1}}
        await chroma_store.insert("memories", [record.to_row()])

        row = (await chroma_store.scan("memories"))[0]

        assert row["id"] == record.id
        assert row["tags"] == ["a", "b"]
        assert row["context"] == ["doc-1"]
        assert row["metadata"] == {"nested": {"k": 1}}
        assert row["created_at"] == record.created_at
        assert len(row["vector"]) == 384

    @pytest.mark.asyncio
    async def test_large_insert_split_into_batches(self, chroma_store):
        """Test inserts larger than the client's batch limit are split."""
        await chroma_store.connect()
        rows = [make_memory().to_row() for _ in range(5)]

        with patch.object(chroma_store._client, "get_max_batch_size", return_value=2):
            await chroma_store.insert("memories", rows)

        assert await chroma_store.count("memories") == 5
        ids = {r["id"] for r in await chroma_store.scan("memories")}
        assert ids == {r["id"] for r in rows}


class TestChromaNearestNeighbors:
    """Tests for similarity search."""

    @pytest.mark.asyncio
    async def test_empty_table_returns_empty(self, chroma_store):
        """Test searching an empty table returns no hits."""
        assert await chroma_store.nearest_neighbors("patterns", constant_vector()) == []

    @pytest.mark.asyncio
    async def test_orders_by_l2_distance(self, chroma_store):
        """Test hits come back closest first with true L2 distances."""
        await chroma_store.insert("patterns", [
            make_pattern(vector=constant_vector(1.0), entity_ids=["far"]).to_row(),
            make_pattern(vector=constant_vector(0.0), entity_ids=["near"]).to_row(),
        ])

        hits = await chroma_store.nearest_neighbors("patterns", constant_vector(0.0), limit=2)

        assert [h.row["entity_ids"] for h in hits] == [["near"], ["far"]]
        assert hits[0].distance == pytest.approx(0.0, abs=1e-4)
        assert hits[1].distance == pytest.approx(math.sqrt(384), rel=1e-3)

    @pytest.mark.asyncio
    async def test_limit_larger_than_table(self, chroma_store):
        """Test a limit beyond the row count returns every row."""
        await chroma_store.insert("patterns", [make_pattern().to_row()])

        hits = await chroma_store.nearest_neighbors("patterns", constant_vector(), limit=10)
        assert len(hits) == 1

    @pytest.mark.asyncio
    async def test_any_of_filter(self, chroma_store, hash_embeddings):
        """Test a list filter matches any of its values."""
        chunks = [
            make_chunk("doc1", 0, file_type="md"),
            make_chunk("doc2", 0, file_type="pdf"),
            make_chunk("doc3", 0, file_type="json"),
        ]
        for chunk in chunks:
            chunk.vector = await hash_embeddings.embed(chunk.content)
        await chroma_store.insert("document_chunks", [c.to_row() for c in chunks])

        hits = await chroma_store.nearest_neighbors(
            "document_chunks",
            constant_vector(0.5),
            filter={"file_type": ["md", "pdf"]},
        )

        assert sorted(h.row["file_type"] for h in hits) == ["md", "pdf"]

    @pytest.mark.asyncio
    async def test_combined_filters_are_anded(self, chroma_store):
        """Test several filter keys must all match."""
        chunks = [make_chunk("doc1", 0, file_type="md"), make_chunk("doc1", 1, file_type="txt")]
        for chunk in chunks:
            chunk.vector = constant_vector(0.1)
        await chroma_store.insert("document_chunks", [c.to_row() for c in chunks])

        hits = await chroma_store.nearest_neighbors(
            "document_chunks",
            constant_vector(0.1),
            filter={"document_id": "doc1", "file_type": "txt"},
        )

        assert [h.row["position"] for h in hits] == [1]

    @pytest.mark.asyncio
    async def test_projection_keeps_id(self, chroma_store):
        """Test a column projection always includes the id."""
        await chroma_store.insert("memories", [make_memory().to_row()])

        hits = await chroma_store.nearest_neighbors(
            "memories", constant_vector(0.5), columns=["content"]
        )

        assert set(hits[0].row) == {"id", "content", WRITTEN_AT}

    @pytest.mark.asyncio
    async def test_invalid_filter_fails_open(self, chroma_store, caplog):
        """Test a bad filter yields no hits and a logged error."""
        await chroma_store.insert("memories", [make_memory().to_row()])

        hits = await chroma_store.nearest_neighbors(
            "memories", constant_vector(), filter={"no_such_field": 1}
        )

        assert hits == []
        assert "Error searching memories" in caplog.text


class TestChromaScan:
    """Tests for unranked scans."""

    @pytest.mark.asyncio
    async def test_scan_filters_by_id(self, chroma_store):
        """Test scanning by id returns every row with that id."""
        record = make_memory(id="mem-dup")
        await chroma_store.insert("memories", [record.to_row(), make_memory().to_row()])
        await chroma_store.insert("memories", [record.to_row()])

        rows = await chroma_store.scan("memories", filter={"id": "mem-dup"})
        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_scan_pagination(self, chroma_store):
        """Test limit and offset page through the table."""
        await chroma_store.insert("memories", [make_memory().to_row() for _ in range(5)])

        first = await chroma_store.scan("memories", limit=2)
        second = await chroma_store.scan("memories", limit=2, offset=2)
        rest = await chroma_store.scan("memories", limit=2, offset=4)

        ids = [r["id"] for r in first + second + rest]
        assert len(first) == 2 and len(second) == 2 and len(rest) == 1
        assert len(set(ids)) == 5

    @pytest.mark.asyncio
    async def test_scan_boolean_filter(self, chroma_store):
        """Test boolean columns can be filtered on."""
        await chroma_store.insert("insights", [
            make_insight(dismissed=False).to_row(),
            make_insight(dismissed=True).to_row(),
        ])

        rows = await chroma_store.scan("insights", filter={"dismissed": True})
        assert [r["dismissed"] for r in rows] == [True]
