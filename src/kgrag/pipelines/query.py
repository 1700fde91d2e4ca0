"""Query pipeline: filtered semantic search and context-grounded answers.

Why this exists:
- Turns a user message into the chunks worth showing an LLM
- Drops weak matches relative to the rest of the result set
- Formats retrieved chunks so the model can cite them by reference

How to use:
    from kgrag.pipelines.query import RetrievalCoordinator

    coordinator = RetrievalCoordinator(config, embedding_provider, vector_store, llm_provider)
    results = await coordinator.search("how is the parser built?")
    answer, context = await coordinator.answer("how is the parser built?")
"""

import asyncio
from statistics import mean
from typing import Optional

from kgrag.config.schema import AppConfig
from kgrag.entities import SearchResult
from kgrag.observability.logging import get_logger
from kgrag.providers.base import EmbeddingProvider, LLMProvider
from kgrag.storage.base import VectorStore

logger = get_logger(__name__)

FALLBACK_REFERENCE = "Memory"
FALLBACK_CONTENT = "No special or relevant information about current context."

CONTEXT_PREAMBLE = "What follows is content to help answer your next question."
CITATION_INSTRUCTION = (
    "When referring to the provided context in your answer, explicitly state which content "
    "you are referencing in the form 'as per [reference], [your answer]'."
)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant that answers questions based on the provided context."


def render_context(context: list[tuple[str, str]]) -> str:
    """Format (reference, content) pairs as delimited context blocks."""
    if not context:
        return ""
    blocks = "\n".join(
        f"--- BEGIN CONTEXT: {reference} ---\n{content}\n--- END CONTEXT ---"
        for reference, content in context
    )
    return f"{CONTEXT_PREAMBLE}\n{blocks}\n{CITATION_INSTRUCTION}"


class RetrievalCoordinator:
    """Embeds queries, searches the vector store and filters the results."""

    def __init__(
        self,
        config: AppConfig,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        llm_provider: Optional[LLMProvider] = None,
    ):
        """Initialize the coordinator.

        Args:
            config: Application configuration
            embedding_provider: Provider for generating query embeddings
            vector_store: Storage holding embedded chunks
            llm_provider: Provider for answers; only needed by answer()
        """
        self.config = config
        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.llm_provider = llm_provider

    async def _embed_query(self, query: str) -> Optional[list[float]]:
        try:
            return await asyncio.wait_for(
                self.embedding_provider.embed_text(query),
                timeout=self.config.ingestion.embedding_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("query_embedding_timeout")
        except Exception as e:
            logger.warning("query_embedding_failed", error=str(e))
        return None

    async def search(self, query: str, top_k: Optional[int] = None) -> list[SearchResult]:
        """Return the top_k matches scoring at or above their own mean.

        The mean is taken over the returned top_k only, so at least one result
        always survives when anything matched.
        """
        if not query or not query.strip():
            return []
        if await self.vector_store.is_empty():
            logger.debug("search_skipped_empty_store")
            return []

        top_k = top_k if top_k is not None else self.config.retrieval.top_k

        query_vector = await self._embed_query(query)
        if not query_vector:
            return []

        results = await self.vector_store.search(query_vector, top_k=top_k)
        if not results:
            return []

        average = mean(r.score for r in results)
        filtered = [r for r in results if r.score >= average]

        logger.info(
            "search_completed",
            top_k=top_k,
            result_count=len(results),
            kept_count=len(filtered),
            mean_score=round(average, 4),
        )
        return filtered

    async def build_context(self, query: str, top_k: Optional[int] = None) -> list[tuple[str, str]]:
        """(reference, content) pairs for the query, or a single fallback entry."""
        results = await self.search(query, top_k)
        if not results:
            logger.info("nothing_relevant_in_knowledge_base")
            return [(FALLBACK_REFERENCE, FALLBACK_CONTENT)]
        return [(r.reference, r.content) for r in results]

    async def answer(
        self,
        question: str,
        top_k: Optional[int] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> tuple[str, list[tuple[str, str]]]:
        """Answer a question with the retrieved context in the system prompt.

        Returns:
            Tuple of (answer, context pairs used)

        Raises:
            QueryError: If no LLM provider was configured
            ProviderError: If generation fails
        """
        if self.llm_provider is None:
            raise QueryError("An LLM provider is required to answer questions")

        context = await self.build_context(question, top_k)
        prompt = f"{system_prompt}\n{render_context(context)}"

        answer = await self.llm_provider.generate(
            prompt=question,
            system_prompt=prompt,
            max_tokens=self.config.llm.max_tokens,
            temperature=self.config.llm.temperature,
        )
        logger.info("answer_completed", source_count=len(context))
        return answer, context


class QueryError(Exception):
    """Exception raised during query processing."""

    pass
