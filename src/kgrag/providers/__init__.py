"""Embedding and LLM backends, selected by the ``provider`` field of a config section."""

from typing import Union

from kgrag.config.schema import EmbeddingConfig, LLMConfig
from kgrag.providers.base import EmbeddingProvider, LLMProvider, ProviderConfig, ProviderError

EMBEDDING_PROVIDERS = ("ollama", "openai", "mock")
LLM_PROVIDERS = ("openai", "ollama", "mock")


def to_provider_config(config: Union[EmbeddingConfig, LLMConfig, ProviderConfig]) -> ProviderConfig:
    if isinstance(config, ProviderConfig):
        return config
    return ProviderConfig(
        provider_type=config.provider.value,
        model_name=config.model_name,
        api_key=config.api_key,
        base_url=config.base_url,
        extra_params=dict(config.extra_params),
    )


def create_embedding_provider(config: Union[EmbeddingConfig, ProviderConfig]) -> EmbeddingProvider:
    """Build the embedding backend named by ``config``.

    Backend modules are imported on demand so the optional ``openai`` SDK is
    only needed when selected.

    Raises:
        ValueError: For an unknown provider type
        ProviderError: If the backend cannot be initialized
    """
    provider_config = to_provider_config(config)
    kind = provider_config.provider_type.lower()

    if kind == "ollama":
        from kgrag.providers.ollama import OllamaEmbeddingProvider

        return OllamaEmbeddingProvider(provider_config)
    if kind == "openai":
        from kgrag.providers.openai import OpenAIEmbeddingProvider

        return OpenAIEmbeddingProvider(provider_config)
    if kind == "mock":
        from kgrag.providers.mock import MockEmbeddingProvider

        return MockEmbeddingProvider(provider_config)

    raise ValueError(f"Unknown embedding provider {kind!r}; expected one of {', '.join(EMBEDDING_PROVIDERS)}")


def create_llm_provider(config: Union[LLMConfig, ProviderConfig]) -> LLMProvider:
    """Build the chat backend named by ``config``; Ollama uses its OpenAI-compatible route."""
    provider_config = to_provider_config(config)
    kind = provider_config.provider_type.lower()

    if kind in ("openai", "ollama"):
        from kgrag.providers.openai_llm import OpenAILLMProvider

        return OpenAILLMProvider(provider_config)
    if kind == "mock":
        from kgrag.providers.mock import MockLLMProvider

        return MockLLMProvider(provider_config)

    raise ValueError(f"Unknown LLM provider {kind!r}; expected one of {', '.join(LLM_PROVIDERS)}")


__all__ = [
    "EmbeddingProvider",
    "LLMProvider",
    "ProviderConfig",
    "ProviderError",
    "create_embedding_provider",
    "create_llm_provider",
    "to_provider_config",
]
