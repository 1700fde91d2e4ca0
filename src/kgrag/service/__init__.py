"""Service layer - session-level store management.

- KnowledgeStores: the vector store and entity graph of one session
- initialize_stores: Store initialization helper
"""

from kgrag.service.stores import KnowledgeStores, initialize_stores

__all__ = [
    "KnowledgeStores",
    "initialize_stores",
]
