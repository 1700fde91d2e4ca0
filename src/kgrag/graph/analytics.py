"""Community detection and cluster statistics over an EntityGraph.

The detector is a single-level greedy pass in the spirit of Louvain, kept
deliberately simple:

- every entity starts in its own community;
- each pass visits entities in insertion order and moves an entity to the
  neighbouring community with the highest positive gain
  ``(edges into target - edges into current) / relationship count``;
  the first community reaching the best gain wins ties;
- passes repeat until nothing moves, then ids are relabelled 0..k-1 in
  first-encounter order.

Each move strictly increases the number of intra-community edges, so the
loop terminates. The result is a local optimum that depends on visiting
order; it is not canonical multi-level Louvain.

All functions read the graph and never mutate it.
"""

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field
from statistics import mean
from typing import Optional

from kgrag.graph.models import Entity
from kgrag.graph.store import EntityGraph
from kgrag.observability.logging import get_logger

logger = get_logger(__name__)

TOP_RELATIONSHIP_TYPES = 3

SIZE_BUCKETS = [
    (5, "Very Small (1-5)"),
    (15, "Small (6-15)"),
    (50, "Medium (16-50)"),
    (100, "Large (51-100)"),
]
LARGEST_BUCKET = "Very Large (100+)"


@dataclass
class CommunityResult:
    """Community assignment (entity name -> id) and its modularity."""

    assignment: dict[str, int]
    modularity: float

    def __iter__(self) -> Iterator:
        return iter((self.assignment, self.modularity))

    @property
    def community_count(self) -> int:
        return len(set(self.assignment.values()))


@dataclass
class GraphCluster:
    """Read-only statistics of one community."""

    id: int
    entity_names: list[str] = field(default_factory=list)
    entity_types: dict[str, int] = field(default_factory=dict)
    density: float = 0.0
    top_relationship_types: list[tuple[str, int]] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.entity_names)

    def __str__(self) -> str:
        return f"Cluster {self.id}: {self.size} entities, Density: {self.density:.3f}"


@dataclass
class ClusterSummary:
    """Aggregate statistics over a set of clusters."""

    count: int
    average_size: float
    average_density: float
    largest: Optional[GraphCluster]
    densest: Optional[GraphCluster]
    size_distribution: dict[str, int]


def _adjacency(graph: EntityGraph) -> list[set[int]]:
    return [graph.neighbor_ids(entity.id) for entity in graph.entities]


def _ordered_adjacency(graph: EntityGraph) -> list[list[int]]:
    """Neighbour ids per entity, outgoing first, in insertion order."""
    return [entity.neighbor_ids() for entity in graph.entities]


def _internal_edges(members: set[int], adjacency: list[set[int]]) -> int:
    """Undirected edges with both ends in members, each counted once."""
    endpoints = sum(len(adjacency[node] & members) for node in members)
    return endpoints // 2


def detect_communities(graph: EntityGraph) -> CommunityResult:
    """Greedy single-level community detection.

    Returns:
        CommunityResult with a dense 0-based assignment and its modularity.
        An edge-free graph yields singleton communities and modularity 0.0.
    """
    entities = graph.entities
    communities = list(range(len(entities)))

    total_edges = graph.relationship_count
    if total_edges == 0:
        return CommunityResult({e.name: i for i, e in enumerate(entities)}, 0.0)

    ordered = _ordered_adjacency(graph)
    passes = 0
    moved = True

    while moved:
        moved = False
        passes += 1

        for node in range(len(entities)):
            current = communities[node]
            neighbor_counts: dict[int, int] = {}
            for neighbor in ordered[node]:
                community = communities[neighbor]
                neighbor_counts[community] = neighbor_counts.get(community, 0) + 1

            current_count = neighbor_counts.get(current, 0)
            best_gain = 0.0
            best_community = current

            for community, count in neighbor_counts.items():
                if community == current:
                    continue
                gain = (count - current_count) / total_edges
                if gain > best_gain:
                    best_gain = gain
                    best_community = community

            if best_community != current:
                communities[node] = best_community
                moved = True

    relabel: dict[int, int] = {}
    assignment: dict[str, int] = {}
    for node, entity in enumerate(entities):
        community = communities[node]
        if community not in relabel:
            relabel[community] = len(relabel)
        assignment[entity.name] = relabel[community]

    modularity = _modularity(graph, assignment, _adjacency(graph), total_edges)
    logger.info(
        "communities_detected",
        entity_count=len(entities),
        relationship_count=total_edges,
        community_count=len(relabel),
        modularity=round(modularity, 4),
        passes=passes,
    )
    return CommunityResult(assignment, modularity)


def _group(assignment: dict[str, int]) -> dict[int, list[str]]:
    groups: dict[int, list[str]] = {}
    for name, community in assignment.items():
        groups.setdefault(community, []).append(name)
    return groups


def _member_ids(graph: EntityGraph, names: list[str]) -> set[int]:
    ids = set()
    for name in names:
        entity = graph.get_entity(name)
        if entity is not None:
            ids.add(entity.id)
    return ids


def _modularity(
    graph: EntityGraph,
    assignment: dict[str, int],
    adjacency: list[set[int]],
    total_edges: int,
) -> float:
    """Sum over communities of internal/m - (sum of degrees)^2 / (4 m^2)."""
    modularity = 0.0
    for names in _group(assignment).values():
        members = _member_ids(graph, names)
        internal = _internal_edges(members, adjacency)
        degree = sum(len(adjacency[node]) for node in members)
        modularity += internal / total_edges - (degree * degree) / (4 * total_edges * total_edges)
    return modularity


def cluster_density(graph: EntityGraph, names: list[str]) -> float:
    """Internal edges over possible edges n(n-1)/2; 0 for fewer than 2 members."""
    members = _member_ids(graph, names)
    n = len(members)
    if n < 2:
        return 0.0
    adjacency = _adjacency(graph)
    return _internal_edges(members, adjacency) / (n * (n - 1) / 2)


def top_relationship_types(
    graph: EntityGraph, names: list[str], limit: int = TOP_RELATIONSHIP_TYPES
) -> list[tuple[str, int]]:
    """Most frequent relationship types among edges inside the given members."""
    members = _member_ids(graph, names)
    counts = Counter(
        r.type
        for r in graph.relationships
        if r.source_id in members and r.target_id in members
    )
    return counts.most_common(limit)


def generate_clusters(graph: EntityGraph, assignment: dict[str, int]) -> list[GraphCluster]:
    """Build one GraphCluster per community, largest first."""
    adjacency = _adjacency(graph)
    clusters = []

    for community, names in _group(assignment).items():
        members = _member_ids(graph, names)
        entity_types: dict[str, int] = {}
        for name in names:
            entity = graph.get_entity(name)
            if entity is None:
                continue
            entity_type = entity.type
            entity_types[entity_type] = entity_types.get(entity_type, 0) + 1

        n = len(members)
        density = _internal_edges(members, adjacency) / (n * (n - 1) / 2) if n >= 2 else 0.0

        clusters.append(
            GraphCluster(
                id=community,
                entity_names=names,
                entity_types=entity_types,
                density=density,
                top_relationship_types=top_relationship_types(graph, names),
            )
        )

    clusters.sort(key=lambda c: c.size, reverse=True)
    return clusters


def entity_community(graph: EntityGraph, name: str, assignment: Optional[dict[str, int]] = None) -> int:
    """Community id of name, or -1 when the entity is unknown."""
    if assignment is None:
        assignment = detect_communities(graph).assignment
    return assignment.get(name, -1)


def entities_in_community(
    graph: EntityGraph, community_id: int, assignment: Optional[dict[str, int]] = None
) -> list[Entity]:
    if assignment is None:
        assignment = detect_communities(graph).assignment
    return [
        entity
        for name, community in assignment.items()
        if community == community_id and (entity := graph.get_entity(name)) is not None
    ]


def internal_degree(graph: EntityGraph, name: str, cluster: GraphCluster) -> tuple[int, int]:
    """(neighbours inside cluster, all neighbours) for one entity."""
    neighbors = graph.all_neighbors(name)
    members = set(cluster.entity_names)
    return sum(1 for n in neighbors if n.name in members), len(neighbors)


def cross_community_connections(
    graph: EntityGraph, cluster: GraphCluster, assignment: dict[str, int]
) -> dict[int, int]:
    """Neighbour links from cluster members into other communities, most first."""
    connections: Counter[int] = Counter()
    for name in cluster.entity_names:
        for neighbor in graph.all_neighbors(name):
            community = assignment.get(neighbor.name, -1)
            if community not in (cluster.id, -1):
                connections[community] += 1
    return dict(connections.most_common())


def _size_bucket(size: int) -> str:
    for upper, label in SIZE_BUCKETS:
        if size <= upper:
            return label
    return LARGEST_BUCKET


def summarize_clusters(clusters: list[GraphCluster]) -> ClusterSummary:
    if not clusters:
        return ClusterSummary(0, 0.0, 0.0, None, None, {})

    distribution: dict[str, int] = {}
    for cluster in clusters:
        bucket = _size_bucket(cluster.size)
        distribution[bucket] = distribution.get(bucket, 0) + 1

    return ClusterSummary(
        count=len(clusters),
        average_size=mean(c.size for c in clusters),
        average_density=mean(c.density for c in clusters),
        largest=max(clusters, key=lambda c: c.size),
        densest=max(clusters, key=lambda c: c.density),
        size_distribution=distribution,
    )
