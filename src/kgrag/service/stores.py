"""Store initialization service.

KnowledgeStores bundles the vector store and the entity graph of one
session. It is built once by the caller and passed to the pipelines that
need it; nothing in the package holds a module-level instance.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from kgrag.config.loader import load_config
from kgrag.config.schema import AppConfig
from kgrag.graph.store import EntityGraph
from kgrag.observability.logging import get_logger
from kgrag.storage import create_vector_store
from kgrag.storage.base import VectorStore

logger = get_logger(__name__)


@dataclass
class KnowledgeStores:
    """The vector store and entity graph of one session."""

    vector_store: VectorStore
    graph: EntityGraph = field(default_factory=EntityGraph)

    async def reset(self) -> None:
        """Discard everything ingested so far."""
        await self.vector_store.clear()
        self.graph.clear()
        logger.info("knowledge_stores_reset")

    async def close(self) -> None:
        await self.vector_store.close()


async def initialize_stores(
    config: Optional[AppConfig] = None, config_path: Optional[Path] = None
) -> KnowledgeStores:
    """Create and initialize the stores.

    Args:
        config: Application configuration; loaded from config_path when omitted
        config_path: Optional path to config file

    Returns:
        Initialized KnowledgeStores
    """
    if config is None:
        config = load_config(config_path=config_path)

    vector_store = create_vector_store("memory", config.retrieval)
    await vector_store.initialize()

    return KnowledgeStores(vector_store=vector_store)
