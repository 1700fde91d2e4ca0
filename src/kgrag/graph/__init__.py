"""Entity graph: storage, traversal, community detection and extraction."""

from kgrag.graph.analytics import (
    ClusterSummary,
    CommunityResult,
    GraphCluster,
    detect_communities,
    generate_clusters,
    summarize_clusters,
)
from kgrag.graph.models import Entity, Neighbor, Relationship
from kgrag.graph.store import EntityGraph

__all__ = [
    "ClusterSummary",
    "CommunityResult",
    "Entity",
    "EntityGraph",
    "GraphCluster",
    "Neighbor",
    "Relationship",
    "detect_communities",
    "generate_clusters",
    "summarize_clusters",
]
