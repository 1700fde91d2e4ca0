"""Unit tests for CLI commands."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from kgrag.config.schema import (
    AppConfig,
    ChunkingConfig,
    EmbeddingConfig,
    EmbeddingProviderType,
    IngestionConfig,
    LLMConfig,
    LLMProviderType,
)
from kgrag.interfaces.cli import _ask_async, _build_graph, _search_async, app

runner = CliRunner()


def offline_config(**overrides) -> AppConfig:
    return AppConfig(
        embedding=EmbeddingConfig(provider=EmbeddingProviderType.MOCK, model_name="mock"),
        llm=LLMConfig(provider=LLMProviderType.MOCK, model_name="mock"),
        **overrides,
    )


@pytest.fixture(autouse=True)
def mock_load_config():
    with patch("kgrag.interfaces.cli._load_config") as mocked:
        mocked.return_value = offline_config()
        yield mocked


@pytest.fixture
def payload_files(tmp_path):
    """Two triangles joined by a single bridge, split over two payload files."""
    first = {
        "entities": [{"name": n, "type": "Module"} for n in ("A", "B", "C")],
        "relationships": [
            {"source": "A", "target": "B", "type": "imports"},
            {"source": "B", "target": "C", "type": "imports"},
            {"source": "C", "target": "A", "type": "calls"},
        ],
    }
    second = {
        "entities": [{"name": n, "type": "Module"} for n in ("D", "E", "F")],
        "relationships": [
            {"source": "D", "target": "E", "type": "imports"},
            {"source": "E", "target": "F", "type": "imports"},
            {"source": "F", "target": "D", "type": "imports"},
            {"source": "C", "target": "D", "type": "bridges"},
        ],
    }
    paths = []
    for name, payload in (("first.json", first), ("second.json", second)):
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        paths.append(path)
    return paths


class TestChunkCommand:
    def test_lists_chunks(self, tmp_path, mock_load_config):
        mock_load_config.return_value = offline_config(chunking=ChunkingConfig(chunk_size=2, overlap=0))
        path = tmp_path / "notes.txt"
        path.write_text("alpha beta\ngamma delta\n", encoding="utf-8")

        result = runner.invoke(app, ["chunk", str(path)])

        assert result.exit_code == 0
        assert "2 chunk(s)" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["chunk", str(tmp_path / "missing.txt")])
        assert result.exit_code == 1


class TestSearchCommand:
    def test_search_finds_matching_file(self, tmp_path):
        (tmp_path / "parser.md").write_text("the parser reads tokens", encoding="utf-8")
        (tmp_path / "weather.md").write_text("sunny weather tomorrow", encoding="utf-8")

        result = runner.invoke(app, ["search", str(tmp_path), "parser tokens"])

        assert result.exit_code == 0
        assert "Found 1 result(s)" in result.output
        assert "Ingested 2 document(s)" in result.output

    def test_missing_path_exits_nonzero(self, tmp_path):
        result = runner.invoke(app, ["search", str(tmp_path / "nope"), "query"])
        assert result.exit_code == 1


@pytest.mark.asyncio
class TestAsyncHelpers:
    async def test_search_async_counts_results(self, tmp_path):
        (tmp_path / "a.txt").write_text("graph community detection", encoding="utf-8")

        found = await _search_async(offline_config(), tmp_path, "community detection", None)

        assert found == 1

    async def test_search_async_missing_path(self, tmp_path):
        assert await _search_async(offline_config(), tmp_path / "nope", "query", None) is None

    async def test_ask_async_uses_llm(self, tmp_path):
        (tmp_path / "a.txt").write_text("graph community detection", encoding="utf-8")
        assert await _ask_async(offline_config(), tmp_path, "what is here?", None, False) is True


class TestGraphCommands:
    def test_build_graph_skips_invalid_payloads(self, tmp_path, payload_files):
        broken = tmp_path / "broken.json"
        broken.write_text("not json", encoding="utf-8")

        graph = _build_graph([*payload_files, broken])

        assert graph.entity_count == 6
        assert graph.relationship_count == 7

    def test_summary(self, payload_files):
        result = runner.invoke(app, ["graph", "summary", *map(str, payload_files)])

        assert result.exit_code == 0
        assert "Entities: 6" in result.output
        assert "Relationships: 7" in result.output

    def test_communities(self, payload_files):
        result = runner.invoke(app, ["graph", "communities", *map(str, payload_files)])

        assert result.exit_code == 0
        assert "Communities: 2" in result.output
        assert "Modularity:" in result.output

    def test_path(self, payload_files):
        result = runner.invoke(
            app, ["graph", "path", *map(str, payload_files), "--from", "A", "--to", "F"]
        )

        assert result.exit_code == 0
        assert "A -> C -> D -> F" in result.output

    def test_path_beyond_depth(self, payload_files):
        result = runner.invoke(
            app,
            ["graph", "path", *map(str, payload_files), "--from", "A", "--to", "F", "--max-depth", "2"],
        )
        assert result.exit_code == 1

    def test_hops(self, payload_files):
        result = runner.invoke(
            app, ["graph", "hops", *map(str, payload_files), "--entity", "C", "--hops", "1"]
        )

        assert result.exit_code == 0
        assert "0: C" in result.output
        assert "1: " in result.output

    def test_hops_unknown_entity(self, payload_files):
        result = runner.invoke(app, ["graph", "hops", *map(str, payload_files), "-e", "Z"])
        assert result.exit_code == 1

    def test_missing_payload_file(self, tmp_path):
        result = runner.invoke(app, ["graph", "summary", str(tmp_path / "missing.json")])
        assert result.exit_code == 1


class TestGraphExtractionOnIngest:
    def test_extract_graph_flag_runs_llm_extraction(self, tmp_path, mock_load_config):
        mock_load_config.return_value = offline_config(ingestion=IngestionConfig(extract_graph=True))
        (tmp_path / "a.txt").write_text("graph community detection", encoding="utf-8")

        result = runner.invoke(app, ["search", str(tmp_path), "community"])

        assert result.exit_code == 0
        assert "Graph: 0 entities" in result.output
