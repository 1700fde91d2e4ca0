"""Graph extraction pipeline: ask an LLM for entities in each chunk.

Extraction calls run concurrently (bounded and timed like embedding calls).
Their payloads are then applied to the graph one by one in chunk order, so
the graph only ever sees a single writer and the result does not depend on
which call finished first.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from kgrag.config.schema import AppConfig
from kgrag.entities import Chunk
from kgrag.graph.extraction import ExtractionPayload, ExtractionResult, GraphExtractor, apply_extraction
from kgrag.graph.store import EntityGraph
from kgrag.observability.logging import bind_context, get_logger
from kgrag.providers.base import LLMProvider

logger = get_logger(__name__)


@dataclass
class GraphExtractionResult:
    chunk_count: int = 0
    extracted_count: int = 0
    skipped_count: int = 0
    entities_added: int = 0
    relationships_added: int = 0


class GraphExtractionPipeline:
    """Extract entities and relationships from chunks into an EntityGraph."""

    def __init__(self, config: AppConfig, llm_provider: LLMProvider, graph: EntityGraph):
        self.config = config
        self.graph = graph
        self.extractor = GraphExtractor(llm_provider, max_tokens=config.llm.max_tokens)

    async def _extract(self, chunk: Chunk, semaphore: asyncio.Semaphore) -> Optional[ExtractionPayload]:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self.extractor.extract(chunk.content),
                    timeout=self.config.ingestion.extraction_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("extraction_timeout", reference=chunk.reference)
            except Exception as e:
                logger.warning("extraction_failed", reference=chunk.reference, error=str(e))
        return None

    async def extract(self, chunks: list[Chunk]) -> GraphExtractionResult:
        """Extract from every chunk and merge the results into the graph."""
        semaphore = asyncio.Semaphore(self.config.ingestion.max_concurrency)
        payloads = await asyncio.gather(*(self._extract(chunk, semaphore) for chunk in chunks))

        result = GraphExtractionResult(chunk_count=len(chunks))
        applied = ExtractionResult()
        for chunk, payload in zip(chunks, payloads):
            if payload is None:
                result.skipped_count += 1
                continue
            with bind_context(source_reference=chunk.reference):
                applied = applied + apply_extraction(self.graph, payload, chunk.reference)
            result.extracted_count += 1

        result.entities_added = applied.entities_added
        result.relationships_added = applied.relationships_added

        logger.info(
            "graph_extraction_completed",
            chunk_count=result.chunk_count,
            skipped_count=result.skipped_count,
            entities_added=result.entities_added,
            relationships_added=result.relationships_added,
            entity_count=self.graph.entity_count,
            relationship_count=self.graph.relationship_count,
        )
        return result
