"""In-memory vector store.

Holds every record in a flat list and answers queries by scoring all of them.
This is exact brute-force search, O(n * d) per query, suitable for the
corpus sizes of a single assistant session.
"""

import threading
from collections.abc import Callable
from typing import Optional

from kgrag.config.schema import RetrievalConfig
from kgrag.core.similarity import cosine_similarity, mmr_select
from kgrag.entities import EmbeddingRecord, SearchResult
from kgrag.observability.logging import get_logger
from kgrag.storage.base import VectorStore

logger = get_logger(__name__)


class InMemoryVectorStore(VectorStore):
    """Append-only in-memory vector store.

    A reentrant lock guards the record list so that a batch written from one
    thread is never observed half-applied by a search running in another.
    """

    def __init__(self, config: Optional[RetrievalConfig] = None) -> None:
        """Initialize in-memory vector store."""
        super().__init__(config)
        self._records: list[EmbeddingRecord] = []
        self._lock = threading.RLock()

    async def initialize(self) -> None:
        """Initialize the vector store."""
        pass

    async def add_embeddings_batch(self, records: list[EmbeddingRecord]) -> None:
        """Append a batch of records."""
        if not records:
            return
        with self._lock:
            self._records.extend(records)
            total = len(self._records)
        logger.debug("embeddings_added", batch_size=len(records), total=total)

    async def search(
        self, query_vector: Optional[list[float]], top_k: int = 3
    ) -> list[SearchResult]:
        """Score every record against query_vector and return the best top_k."""
        if not query_vector or top_k <= 0:
            return []

        with self._lock:
            records = list(self._records)

        if not records:
            return []

        scores = [cosine_similarity(query_vector, record.vector) for record in records]
        # sorted() is stable, so equal scores keep insertion order
        ranked = sorted(range(len(records)), key=lambda i: scores[i], reverse=True)

        if self.config.use_mmr and top_k > 1 and len(ranked) > top_k:
            selected = self._mmr(records, ranked, scores, top_k)
        else:
            selected = ranked[:top_k]

        results = [
            SearchResult(
                score=scores[i],
                reference=records[i].reference,
                content=records[i].content,
            )
            for i in selected
        ]

        logger.debug(
            "vector_search_completed",
            candidates=len(records),
            result_count=len(results),
            top_scores=[round(r.score, 4) for r in results],
        )
        return results

    def _mmr(
        self,
        records: list[EmbeddingRecord],
        ranked: list[int],
        scores: list[float],
        top_k: int,
    ) -> list[int]:
        """Re-rank a relevance pool for diversity, then order by relevance."""
        pool_size = min(
            len(ranked),
            max(top_k * self.config.mmr_pool_multiplier, top_k + self.config.mmr_min_extra),
        )
        pool = ranked[:pool_size]

        selected = mmr_select(
            pool,
            [scores[i] for i in pool],
            top_k,
            self.config.mmr_lambda,
            lambda i, j: cosine_similarity(records[i].vector, records[j].vector),
        )
        # Python's sort is stable; keep selection order on equal scores
        return sorted(selected, key=lambda i: scores[i], reverse=True)

    async def search_references(self, reference: str) -> list[SearchResult]:
        """Return records whose reference contains the given text."""
        needle = reference.lower()
        with self._lock:
            return [
                SearchResult(score=1.0, reference=r.reference, content=r.content)
                for r in self._records
                if needle in r.reference.lower()
            ]

    async def entries(
        self, predicate: Optional[Callable[[str, str], bool]] = None
    ) -> list[tuple[str, str]]:
        """Return (reference, content) pairs, optionally filtered."""
        with self._lock:
            return [
                (r.reference, r.content)
                for r in self._records
                if predicate is None or predicate(r.reference, r.content)
            ]

    async def clear(self) -> None:
        """Discard all records."""
        with self._lock:
            count = len(self._records)
            self._records.clear()
        logger.info("vector_store_cleared", removed=count)

    async def count(self) -> int:
        """Return total number of records stored."""
        with self._lock:
            return len(self._records)

    async def close(self) -> None:
        """Close connections and cleanup resources."""
        with self._lock:
            self._records.clear()
