"""Ingestion pipeline: read, chunk, embed, and store documents.

Why this exists:
- Orchestrates the document ingestion flow
- Embeds chunks concurrently without overwhelming the provider
- Reports skipped work as counts instead of failing a whole document

How to use:
    from kgrag.pipelines.ingestion import IngestionPipeline

    pipeline = IngestionPipeline(config, embedding_provider, vector_store)
    result = await pipeline.ingest_file(Path("notes.md"))
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from kgrag.config.schema import AppConfig
from kgrag.core.chunking import TextChunker, create_chunker
from kgrag.entities import Chunk, EmbeddingRecord
from kgrag.observability.logging import bind_context, get_logger
from kgrag.providers.base import EmbeddingProvider
from kgrag.storage.base import VectorStore

logger = get_logger(__name__)


@dataclass
class IngestionResult:
    """Result of ingesting one document or a set of documents."""

    reference: str
    chunk_count: int = 0
    embedded_count: int = 0
    skipped_count: int = 0
    document_count: int = 1
    skipped_documents: list[str] = field(default_factory=list)
    chunks: list[Chunk] = field(default_factory=list, repr=False)

    def merge(self, other: "IngestionResult") -> None:
        self.chunk_count += other.chunk_count
        self.embedded_count += other.embedded_count
        self.skipped_count += other.skipped_count
        self.document_count += other.document_count
        self.skipped_documents.extend(other.skipped_documents)
        self.chunks.extend(other.chunks)


class IngestionPipeline:
    """Pipeline for ingesting documents into a vector store."""

    def __init__(
        self,
        config: AppConfig,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        chunker: Optional[TextChunker] = None,
    ):
        """Initialize the ingestion pipeline.

        Args:
            config: Application configuration
            embedding_provider: Provider for generating embeddings
            vector_store: Storage for embeddings
            chunker: Segmentation strategy (defaults to the configured one)
        """
        self.config = config
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.chunker = chunker or create_chunker(config.chunking)

    async def _embed(self, chunk: Chunk, semaphore: asyncio.Semaphore) -> Optional[list[float]]:
        """Embed one chunk; any failure yields None so the chunk is skipped."""
        async with semaphore:
            try:
                vector = await asyncio.wait_for(
                    self.embedding_provider.embed_text(chunk.content),
                    timeout=self.config.ingestion.embedding_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("embedding_timeout", reference=chunk.reference)
                return None
            except Exception as e:
                logger.warning("embedding_failed", reference=chunk.reference, error=str(e))
                return None

        if not vector:
            logger.warning("embedding_empty", reference=chunk.reference)
            return None
        return vector

    async def embed_chunks(self, chunks: list[Chunk]) -> list[EmbeddingRecord]:
        """Embed chunks concurrently, returning records in chunk order."""
        semaphore = asyncio.Semaphore(self.config.ingestion.max_concurrency)
        vectors = await asyncio.gather(*(self._embed(chunk, semaphore) for chunk in chunks))
        return [
            EmbeddingRecord.from_chunk(chunk, vector)
            for chunk, vector in zip(chunks, vectors)
            if vector is not None
        ]

    async def ingest_text(self, path: str, text: str) -> IngestionResult:
        """Segment text, embed the chunks and store them in one batch.

        Args:
            path: Reference path used in chunk references
            text: Document content

        Returns:
            IngestionResult with chunk, embedded and skipped counts
        """
        chunks = self.chunker.chunk(path, text)
        if not chunks:
            logger.info("no_chunks_created", reference=path)
            return IngestionResult(reference=path)

        records = await self.embed_chunks(chunks)
        await self.vector_store.add_embeddings_batch(records)

        result = IngestionResult(
            reference=path,
            chunk_count=len(chunks),
            embedded_count=len(records),
            skipped_count=len(chunks) - len(records),
            chunks=chunks,
        )
        logger.info(
            "ingestion_completed",
            reference=path,
            chunk_count=result.chunk_count,
            embedded_count=result.embedded_count,
            skipped_count=result.skipped_count,
        )
        return result

    async def ingest_file(self, file_path: Path) -> IngestionResult:
        """Ingest a file from the filesystem.

        Raises:
            IngestionError: If the file does not exist or cannot be read
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            raise IngestionError(f"File not found: {file_path}")

        try:
            content = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise IngestionError(f"Failed to read file: {e}") from e

        return await self.ingest_text(str(file_path), content)

    def collect_files(self, directory: Path) -> list[Path]:
        """Files under directory with a supported extension, sorted by path."""
        extensions = set(self.config.chunking.supported_extensions)
        return sorted(
            p for p in directory.rglob("*") if p.is_file() and p.suffix.lower() in extensions
        )

    async def ingest_directory(self, directory: Path) -> IngestionResult:
        """Recursively ingest every supported file under directory.

        Files that cannot be read are recorded in skipped_documents.

        Raises:
            IngestionError: If directory does not exist
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise IngestionError(f"Directory not found: {directory}")

        total = IngestionResult(reference=str(directory), document_count=0)
        with bind_context(directory=str(directory)):
            for file_path in self.collect_files(directory):
                try:
                    total.merge(await self.ingest_file(file_path))
                except IngestionError as e:
                    logger.warning("document_skipped", path=str(file_path), error=str(e))
                    total.skipped_documents.append(str(file_path))

        logger.info(
            "directory_ingested",
            directory=str(directory),
            document_count=total.document_count,
            chunk_count=total.chunk_count,
            skipped_documents=len(total.skipped_documents),
        )
        return total

    async def ingest_path(self, path: Path) -> IngestionResult:
        """Ingest a file or a directory."""
        path = Path(path)
        if path.is_dir():
            return await self.ingest_directory(path)
        return await self.ingest_file(path)


class IngestionError(Exception):
    """Exception raised during document ingestion."""

    pass
