"""Abstract base class for vector storage backends.

Pipelines talk to VectorStore only. The async interface lets a backend
that does I/O slot in without changing callers; the bundled in-memory
store never awaits anything. New backends are registered in
create_vector_store.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Optional

from kgrag.config.schema import RetrievalConfig
from kgrag.entities import EmbeddingRecord, SearchResult


class VectorStore(ABC):
    """Append-only store of embedded chunks with top-K similarity search."""

    def __init__(self, config: Optional[RetrievalConfig] = None) -> None:
        """Initialize storage with configuration."""
        self.config = config or RetrievalConfig()

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the store for use."""
        pass

    @abstractmethod
    async def add_embeddings_batch(self, records: list[EmbeddingRecord]) -> None:
        """Append embedded chunks.

        Args:
            records: Records to store, in the order they should tie-break
        """
        pass

    @abstractmethod
    async def search(
        self, query_vector: Optional[list[float]], top_k: int = 3
    ) -> list[SearchResult]:
        """Search for the records most similar to query_vector.

        Args:
            query_vector: Query embedding vector
            top_k: Maximum number of results to return

        Returns:
            Results ordered by descending score; empty for an empty query or store

        Raises:
            DimensionMismatchError: If a stored vector has a different length
        """
        pass

    @abstractmethod
    async def search_references(self, reference: str) -> list[SearchResult]:
        """Return records whose reference contains the given text (case-insensitive)."""
        pass

    @abstractmethod
    async def entries(
        self, predicate: Optional[Callable[[str, str], bool]] = None
    ) -> list[tuple[str, str]]:
        """Return (reference, content) pairs, optionally filtered."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Discard all stored records."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Return total number of records stored."""
        pass

    async def is_empty(self) -> bool:
        """Return True when nothing has been stored."""
        return await self.count() == 0

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources."""
        pass
