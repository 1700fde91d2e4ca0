"""Unit tests for the ingestion pipeline."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from kgrag.config.schema import AppConfig, ChunkingConfig, IngestionConfig
from kgrag.pipelines.ingestion import IngestionError, IngestionPipeline
from kgrag.providers.base import ProviderError
from kgrag.providers.mock import MockEmbeddingProvider
from kgrag.storage.memory import InMemoryVectorStore


def make_config(**ingestion) -> AppConfig:
    return AppConfig(
        chunking=ChunkingConfig(chunk_size=2, overlap=1),
        ingestion=IngestionConfig(**ingestion),
    )


class FlakyProvider(MockEmbeddingProvider):
    """Fails, hangs or returns nothing for chosen inputs."""

    def __init__(self, fail=(), hang=(), empty=()):
        super().__init__()
        self.fail, self.hang, self.empty = set(fail), set(hang), set(empty)
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed_text(self, text: str) -> list[float]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if text in self.fail:
                raise ProviderError(message="boom", provider="flaky")
            if text in self.hang:
                await asyncio.sleep(10)
            if text in self.empty:
                return []
            return await super().embed_text(text)
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
class TestIngestText:
    @pytest.fixture
    async def store(self):
        store = InMemoryVectorStore()
        await store.initialize()
        yield store
        await store.close()

    async def test_chunks_embedded_and_stored_in_order(self, store):
        pipeline = IngestionPipeline(make_config(), MockEmbeddingProvider(), store)
        text = "\n".join(["alpha " * 4, "beta " * 4, "gamma " * 4])

        result = await pipeline.ingest_text("notes.txt", text)

        assert result.chunk_count == 3
        assert result.embedded_count == 3
        assert result.skipped_count == 0
        references = [ref for ref, _ in await store.entries()]
        assert references == [
            "notes.txt, Lines 1 to 1",
            "notes.txt, Lines 2 to 2",
            "notes.txt, Lines 3 to 3",
        ]

    async def test_failures_timeouts_and_empty_vectors_are_skipped(self, store):
        lines = [f"line {i} " * 4 for i in range(4)]
        provider = FlakyProvider(fail=[lines[0]], hang=[lines[1]], empty=[lines[2]])
        pipeline = IngestionPipeline(make_config(embedding_timeout=0.2), provider, store)

        result = await pipeline.ingest_text("notes.txt", "\n".join(lines))

        assert result.chunk_count == 4
        assert result.embedded_count == 1
        assert result.skipped_count == 3
        assert [ref for ref, _ in await store.entries()] == ["notes.txt, Lines 4 to 4"]

    async def test_concurrency_is_bounded(self, store):
        provider = FlakyProvider()
        pipeline = IngestionPipeline(make_config(max_concurrency=2), provider, store)
        text = "\n".join(f"line {i} " * 4 for i in range(8))

        result = await pipeline.ingest_text("notes.txt", text)

        assert result.embedded_count == 8
        assert provider.max_in_flight == 2

    async def test_unexpected_provider_exception_skips_chunk(self, store):
        provider = AsyncMock()
        provider.embed_text.side_effect = RuntimeError("unexpected")
        pipeline = IngestionPipeline(make_config(), provider, store)

        result = await pipeline.ingest_text("notes.txt", "only line")

        assert result.skipped_count == 1
        assert await store.count() == 0

    async def test_nothing_to_chunk(self, store):
        pipeline = IngestionPipeline(make_config(), MockEmbeddingProvider(), store)
        result = await pipeline.ingest_text("blank.txt", "  \n ")
        assert result.chunk_count == 0
        assert await store.is_empty()


@pytest.mark.asyncio
class TestIngestFiles:
    async def test_ingest_file(self, tmp_path):
        path = tmp_path / "guide.md"
        path.write_text("# Guide\nInstall the package.", encoding="utf-8")
        store = InMemoryVectorStore()
        pipeline = IngestionPipeline(AppConfig(), MockEmbeddingProvider(), store)

        result = await pipeline.ingest_file(path)

        assert result.embedded_count == 1
        assert (await store.entries())[0][0] == str(path)

    async def test_undecodable_bytes_are_replaced(self, tmp_path):
        path = tmp_path / "data.txt"
        path.write_bytes(b"valid text \xff\xfe more")
        pipeline = IngestionPipeline(AppConfig(), MockEmbeddingProvider(), InMemoryVectorStore())

        result = await pipeline.ingest_file(path)

        assert result.chunks[0].content.startswith("valid text")

    async def test_missing_file_raises(self, tmp_path):
        pipeline = IngestionPipeline(AppConfig(), MockEmbeddingProvider(), InMemoryVectorStore())
        with pytest.raises(IngestionError):
            await pipeline.ingest_file(tmp_path / "missing.md")

    async def test_ingest_directory_uses_supported_extensions(self, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "a.md").write_text("alpha", encoding="utf-8")
        (tmp_path / "b.py").write_text("print('beta')", encoding="utf-8")
        (tmp_path / "image.png").write_bytes(b"\x89PNG")
        store = InMemoryVectorStore()
        pipeline = IngestionPipeline(AppConfig(), MockEmbeddingProvider(), store)

        result = await pipeline.ingest_directory(tmp_path)

        assert result.document_count == 2
        assert result.embedded_count == 2
        assert sorted(ref for ref, _ in await store.entries()) == sorted(
            [str(tmp_path / "b.py"), str(tmp_path / "docs" / "a.md")]
        )

    async def test_missing_directory_raises(self, tmp_path):
        pipeline = IngestionPipeline(AppConfig(), MockEmbeddingProvider(), InMemoryVectorStore())
        with pytest.raises(IngestionError):
            await pipeline.ingest_directory(tmp_path / "nope")

    async def test_ingest_path_dispatches(self, tmp_path):
        (tmp_path / "a.txt").write_text("alpha", encoding="utf-8")
        pipeline = IngestionPipeline(AppConfig(), MockEmbeddingProvider(), InMemoryVectorStore())

        from_dir = await pipeline.ingest_path(tmp_path)
        from_file = await pipeline.ingest_path(tmp_path / "a.txt")

        assert from_dir.document_count == 1
        assert from_file.reference == str(tmp_path / "a.txt")
