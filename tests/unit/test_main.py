"""
Unit tests for guru/main.py

Tests argument parsing, the mapping from subcommands to tool calls,
and the command runner with a mocked engine.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from guru.main import build_parser, main, run, to_tool_calls


def _calls(*argv):
    return to_tool_calls(build_parser().parse_args(list(argv)))


class TestToToolCalls:
    """Tests for translating subcommands into tool calls."""

    def test_stats(self):
        """Test stats maps to get_memory_stats."""
        assert _calls("stats") == [("get_memory_stats", {})]

    def test_add_with_tags(self):
        """Test repeated --tag options collect into a list."""
        assert _calls("add", "Prefers pytest", "--type", "preference", "--tag", "a", "--tag", "b") == [
            ("add_memory", {
                "content": "Prefers pytest",
                "type": "preference",
                "importance": 0.5,
                "tags": ["a", "b"],
            })
        ]

    def test_search_limit(self):
        """Test search passes the limit through."""
        assert _calls("search", "testing", "--limit", "3") == [
            ("search_memories", {"query": "testing", "limit": 3})
        ]

    def test_insights_generate_then_list(self):
        """Test --generate runs generation before listing."""
        assert [name for name, _ in _calls("insights", "--generate")] == [
            "generate_insights", "list_insights",
        ]
        assert [name for name, _ in _calls("insights")] == ["list_insights"]

    def test_index_one_call_per_path(self):
        """Test each path is indexed separately."""
        assert _calls("index", "a.md", "b.txt") == [
            ("index_file", {"file_path": "a.md"}),
            ("index_file", {"file_path": "b.txt"}),
        ]

    def test_docs_with_types(self):
        """Test document search uses the tool's argument names."""
        assert _calls("docs", "vector store", "--types", "md", "pdf", "--max-results", "4") == [
            ("search_documents", {
                "query": "vector store",
                "fileTypes": ["md", "pdf"],
                "maxResults": 4,
            })
        ]

    def test_chunks_and_dismiss(self):
        """Test chunk listing and insight dismissal."""
        assert _calls("chunks", "doc-1") == [("get_document_chunks", {"documentId": "doc-1"})]
        assert _calls("dismiss", "ins-1") == [("dismiss_insight", {"id": "ins-1"})]

    def test_command_required(self):
        """Test running without a subcommand is a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRun:
    """Tests for the command runner."""

    @pytest.fixture
    def mock_engine(self):
        engine = MagicMock()
        engine.connect = AsyncMock()
        engine.close = AsyncMock()
        return engine

    @pytest.mark.asyncio
    async def test_run_prints_results(self, mock_engine, capsys):
        """Test each tool result is printed as JSON and the engine closed."""
        args = build_parser().parse_args(["stats"])

        with patch("guru.main.config") as mock_config, \
             patch("guru.main.create_memory_engine_from_config", return_value=mock_engine), \
             patch("guru.main.ToolRegistry") as MockRegistry:
            mock_config.validate.return_value = []
            MockRegistry.return_value.call = AsyncMock(return_value={"memories": 3})

            assert await run(args) is True

        assert json.loads(capsys.readouterr().out) == {"memories": 3}
        mock_engine.connect.assert_awaited_once()
        mock_engine.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_stops_on_invalid_config(self, mock_engine):
        """Test configuration errors abort before the engine is built."""
        args = build_parser().parse_args(["stats"])

        with patch("guru.main.config") as mock_config, \
             patch("guru.main.create_memory_engine_from_config") as mock_factory:
            mock_config.validate.return_value = ["POSTGRES_URL is required"]

            assert await run(args) is False

        mock_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_closes_engine_on_error(self, mock_engine):
        """Test the engine is closed even when a tool call fails."""
        args = build_parser().parse_args(["search", "x"])

        with patch("guru.main.config") as mock_config, \
             patch("guru.main.create_memory_engine_from_config", return_value=mock_engine), \
             patch("guru.main.ToolRegistry") as MockRegistry:
            mock_config.validate.return_value = []
            MockRegistry.return_value.call = AsyncMock(side_effect=RuntimeError("boom"))

            with pytest.raises(RuntimeError):
                await run(args)

        mock_engine.close.assert_awaited_once()


class TestMain:
    """Tests for the process entry point."""

    def test_exit_codes(self):
        """Test success and failure map to exit codes 0 and 1."""
        with patch("guru.main.run", new=AsyncMock(return_value=True)):
            with pytest.raises(SystemExit) as exc:
                main(["stats"])
        assert exc.value.code == 0

        with patch("guru.main.run", new=AsyncMock(return_value=False)):
            with pytest.raises(SystemExit) as exc:
                main(["stats"])
        assert exc.value.code == 1

    def test_fatal_error(self, capsys):
        """Test unexpected errors are printed and exit with 1."""
        with patch("guru.main.run", new=AsyncMock(side_effect=RuntimeError("disk full"))):
            with pytest.raises(SystemExit) as exc:
                main(["stats"])

        assert exc.value.code == 1
        assert "disk full" in capsys.readouterr().out
