"""Immutable records that flow between segmentation, the vector index and queries."""

from kgrag.entities.chunk import Chunk
from kgrag.entities.embedding import EmbeddingRecord
from kgrag.entities.search_result import SearchResult

__all__ = [
    "Chunk",
    "EmbeddingRecord",
    "SearchResult",
]
