"""Ollama embedding provider.

Talks to a local Ollama server over HTTP. No API key needed and data never
leaves the machine; the model must be pulled on the server beforehand
(``ollama pull nomic-embed-text``).
"""

from typing import Any

import httpx

from kgrag.observability.logging import get_logger
from kgrag.providers.base import EmbeddingProvider, ProviderConfig, ProviderError

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"

MODEL_METADATA = {
    "nomic-embed-text": {"dimension": 768, "max_tokens": 8192},
    "mxbai-embed-large": {"dimension": 1024, "max_tokens": 512},
    "all-minilm": {"dimension": 384, "max_tokens": 256},
}


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by Ollama's ``/api/embeddings`` endpoint.

    Example:
        config = ProviderConfig(provider_type="ollama", model_name="nomic-embed-text")
        provider = OllamaEmbeddingProvider(config)
        embedding = await provider.embed_text("Hello world")
    """

    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(config)
        self.model_name = config.model_name
        self.base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")

        metadata = MODEL_METADATA.get(self.model_name)
        if metadata is None:
            logger.warning(
                "unknown_ollama_model",
                model_name=self.model_name,
                known_models=list(MODEL_METADATA.keys()),
            )
            metadata = {"dimension": 768, "max_tokens": 2048}
        self._dimension = metadata["dimension"]
        self._max_tokens = metadata["max_tokens"]

        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.extra_params.get("timeout", 60.0),
        )

        logger.info(
            "ollama_embedding_provider_initialized",
            model_name=self.model_name,
            base_url=self.base_url,
        )

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            ProviderError: If text is empty or the request fails
        """
        if not text or not text.strip():
            raise ProviderError(message="Cannot embed empty text", provider="ollama")

        payload: dict[str, Any] = {"model": self.model_name, "prompt": text}
        options = self.config.extra_params.get("options")
        if options:
            payload["options"] = options

        try:
            response = await self.client.post("/api/embeddings", json=payload)
            response.raise_for_status()
            embedding = response.json().get("embedding") or []
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                message=f"Ollama API error: {e.response.status_code} - {e.response.text}",
                provider="ollama",
                original_error=e,
            )
        except httpx.HTTPError as e:
            raise ProviderError(
                message=f"Network error connecting to Ollama at {self.base_url}: {e}",
                provider="ollama",
                original_error=e,
            )

        if embedding:
            self._dimension = len(embedding)
        return embedding

    def get_dimension(self) -> int:
        return self._dimension

    def get_max_tokens(self) -> int:
        return self._max_tokens

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
