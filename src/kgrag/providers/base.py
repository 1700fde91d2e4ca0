"""Provider interfaces: text -> vector, and prompt -> completion.

The pipelines depend only on these two ABCs. Concrete clients live next to
this module (ollama, openai, openai_llm, mock) and are built from config by
the factories in ``kgrag.providers``.

Providers signal every failure with ProviderError. Callers that batch work
(ingestion, extraction, query embedding) catch it per item and skip that
item; nothing here retries.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field


class ProviderConfig(BaseModel):
    """Connection settings shared by every provider."""

    provider_type: str
    model_name: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    extra_params: dict[str, Any] = Field(default_factory=dict)


class _Closeable:
    async def close(self) -> None:
        """Release client resources; the default holds none."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class EmbeddingProvider(_Closeable, ABC):
    """Turns text into fixed-length vectors."""

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    def describe(self) -> str:
        return f"{self.config.provider_type}/{self.config.model_name}"

    @abstractmethod
    async def embed_text(self, text: str) -> list[float]:
        """Embed one text.

        An empty return value is treated by callers like a failure: the
        chunk or query is skipped.

        Raises:
            ProviderError: If the backend call fails
        """

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts in order; backends with a batch API override this."""
        return [await self.embed_text(text) for text in texts]

    @abstractmethod
    def get_dimension(self) -> int:
        """Vector length produced by the model."""

    @abstractmethod
    def get_max_tokens(self) -> int:
        """Longest input the model accepts, in tokens."""


class LLMProvider(_Closeable, ABC):
    """Chat-style text generation, used for answers and entity extraction."""

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config

    def describe(self) -> str:
        return f"{self.config.provider_type}/{self.config.model_name}"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        """Complete prompt, optionally under a system prompt.

        Raises:
            ProviderError: If the backend call fails or returns no content
        """


class ProviderError(Exception):
    """A provider call failed; message is meant for the user."""

    def __init__(self, message: str, provider: str, original_error: Optional[Exception] = None):
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(f"{provider}: {message}")
