"""Deterministic offline providers.

MockEmbeddingProvider hashes words into a fixed number of buckets, so texts
sharing vocabulary get similar vectors. That is enough for demos, the CLI
without a model server, and tests.
"""

import hashlib
import re
from typing import Optional

from kgrag.providers.base import EmbeddingProvider, LLMProvider, ProviderConfig, ProviderError

DEFAULT_DIMENSION = 64

_WORD = re.compile(r"\w+")


class MockEmbeddingProvider(EmbeddingProvider):
    """Hashed bag-of-words embeddings."""

    def __init__(self, config: ProviderConfig | None = None) -> None:
        super().__init__(config or ProviderConfig(provider_type="mock", model_name="mock"))
        self._dimension = int(self.config.extra_params.get("dimension", DEFAULT_DIMENSION))

    def _bucket(self, word: str) -> int:
        digest = hashlib.md5(word.encode("utf-8")).digest()
        return int.from_bytes(digest[:4], "little") % self._dimension

    async def embed_text(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ProviderError(message="Cannot embed empty text", provider="mock")

        vector = [0.0] * self._dimension
        for word in _WORD.findall(text.lower()):
            vector[self._bucket(word)] += 1.0
        return vector

    def get_dimension(self) -> int:
        return self._dimension

    def get_max_tokens(self) -> int:
        return 8192


class MockLLMProvider(LLMProvider):
    """Returns a canned response and records every prompt it receives."""

    def __init__(self, config: ProviderConfig | None = None, response: Optional[str] = None) -> None:
        super().__init__(config or ProviderConfig(provider_type="mock", model_name="mock"))
        self.response = response if response is not None else self.config.extra_params.get(
            "response", '{"entities": [], "relationships": []}'
        )
        self.prompts: list[tuple[Optional[str], str]] = []

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        self.prompts.append((system_prompt, prompt))
        return self.response
