"""Storage layer: vector stores."""

from typing import Optional

from kgrag.config.schema import RetrievalConfig
from kgrag.storage.base import VectorStore


def create_vector_store(
    store_type: str = "memory", config: Optional[RetrievalConfig] = None
) -> VectorStore:
    """Factory function to create vector stores.

    Args:
        store_type: Backend name
        config: Retrieval configuration (MMR settings)

    Returns:
        Uninitialized vector store

    Raises:
        ValueError: If store_type is unknown

    Example:
        store = create_vector_store("memory", RetrievalConfig(top_k=5))
        await store.initialize()
    """
    store_type = store_type.lower()

    if store_type == "memory":
        from kgrag.storage.memory import InMemoryVectorStore

        return InMemoryVectorStore(config)

    raise ValueError(
        f"Unknown vector store type: '{store_type}'. "
        f"Supported types: memory"
    )


__all__ = [
    "VectorStore",
    "create_vector_store",
]
