"""OpenAI embeddings through the official SDK (``pip install 'kgrag[openai]'``).

``api_key`` may hold the key itself or the name of an environment variable
that holds it, so config files can say ``api_key = "OPENAI_API_KEY"``.
"""

import os

from kgrag.observability.logging import get_logger
from kgrag.providers.base import EmbeddingProvider, ProviderConfig, ProviderError

logger = get_logger(__name__)

# model -> (dimension, max input tokens)
MODEL_METADATA = {
    "text-embedding-ada-002": (1536, 8191),
    "text-embedding-3-small": (1536, 8191),
    "text-embedding-3-large": (3072, 8191),
}
FALLBACK_METADATA = (1536, 8191)

DEFAULT_MODEL = "text-embedding-3-small"

# inputs per embeddings.create call accepted by the API
MAX_BATCH_SIZE = 2048

_ERROR_KINDS = [
    (("authentication", "api_key"), "OpenAI authentication failed"),
    (("rate_limit",), "OpenAI rate limit exceeded"),
    (("connection", "network"), "Network error connecting to OpenAI"),
]


def _provider_error(error: Exception, action: str) -> ProviderError:
    message = str(error)
    lowered = message.lower()
    prefix = next(
        (label for needles, label in _ERROR_KINDS if any(n in lowered for n in needles)),
        f"Failed to {action}",
    )
    return ProviderError(message=f"{prefix}: {message}", provider="openai", original_error=error)


def _create_client(config: ProviderConfig, api_key: str):
    try:
        from openai import AsyncOpenAI
    except ImportError as e:
        raise ProviderError(
            message="openai package not installed. Install with: pip install 'kgrag[openai]'",
            provider="openai",
            original_error=e,
        )

    kwargs = {"api_key": api_key}
    if config.base_url:
        kwargs["base_url"] = config.base_url
    kwargs.update(config.extra_params)
    try:
        return AsyncOpenAI(**kwargs)
    except Exception as e:
        raise ProviderError(
            message=f"Failed to initialize OpenAI client: {e}", provider="openai", original_error=e
        )


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI ``embeddings`` endpoint."""

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)

        if not config.api_key:
            raise ProviderError(message="API key is required", provider="openai")

        self.model_name = config.model_name or DEFAULT_MODEL
        if self.model_name not in MODEL_METADATA:
            logger.warning("unknown_openai_model", model_name=self.model_name, known_models=list(MODEL_METADATA))
        self._dimension, self._max_tokens = MODEL_METADATA.get(self.model_name, FALLBACK_METADATA)

        self.client = _create_client(config, os.getenv(config.api_key) or config.api_key)
        logger.info("openai_embedding_provider_initialized", model_name=self.model_name, dimension=self._dimension)

    async def embed_text(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ProviderError(message="Cannot embed empty text", provider="openai")

        try:
            response = await self.client.embeddings.create(input=text, model=self.model_name)
        except Exception as e:
            raise _provider_error(e, "generate embedding")

        usage = getattr(response, "usage", None)
        if usage:
            logger.debug("openai_embedding_generated", tokens_used=usage.total_tokens, model=self.model_name)
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """One request per MAX_BATCH_SIZE texts; output order matches input."""
        empty = [i for i, text in enumerate(texts) if not text or not text.strip()]
        if empty:
            raise ProviderError(message=f"Cannot embed empty text at index {empty[0]}", provider="openai")

        embeddings: list[list[float]] = []
        for start in range(0, len(texts), MAX_BATCH_SIZE):
            batch = texts[start : start + MAX_BATCH_SIZE]
            try:
                response = await self.client.embeddings.create(input=batch, model=self.model_name)
            except Exception as e:
                raise _provider_error(e, "generate batch embeddings")
            embeddings.extend(item.embedding for item in response.data)

        if texts:
            logger.debug("openai_batch_embeddings_generated", total_texts=len(texts), model=self.model_name)
        return embeddings

    def get_dimension(self) -> int:
        return self._dimension

    def get_max_tokens(self) -> int:
        return self._max_tokens

    async def close(self) -> None:
        await self.client.close()
