"""Entity graph store.

Why this exists:
- Holds the entities and relationships extracted from ingested text
- Keeps per-entity adjacency (outgoing and incoming, grouped by relation type)
  in step with the flat relationship list
- Answers neighbourhood, shortest-path and bounded-hop queries

Entities are stored in an arena and addressed by integer id. All mutation
goes through add_entity and add_relationship; add_relationship updates the
flat list and both adjacency sides in one call. The store is single-writer:
concurrent writers must serialize their calls.

How to use:
    graph = EntityGraph()
    graph.add_entity(Entity(name="Parser", type="Class"))
    graph.add_entity(Entity(name="Lexer", type="Class"))
    graph.add_relationship("Parser", "Lexer", "uses", "tokenizes input")
    graph.shortest_path("Parser", "Lexer")
"""

from collections import Counter, deque
from collections.abc import Iterator
from dataclasses import replace
from typing import Optional, Union

from kgrag.graph.models import Entity, Relationship
from kgrag.observability.logging import get_logger

logger = get_logger(__name__)

EntityRef = Union[str, Entity]


class EntityGraph:
    """Directed, typed entity/relationship graph with live adjacency."""

    def __init__(self) -> None:
        self._entities: list[Entity] = []
        self._ids: dict[str, int] = {}
        self._relationships: list[Relationship] = []

    # -- contents ---------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, name: object) -> bool:
        return name in self._ids

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities)

    @property
    def entities(self) -> list[Entity]:
        return list(self._entities)

    @property
    def relationships(self) -> list[Relationship]:
        return list(self._relationships)

    @property
    def entity_count(self) -> int:
        return len(self._entities)

    @property
    def relationship_count(self) -> int:
        return len(self._relationships)

    @property
    def is_empty(self) -> bool:
        return not self._entities and not self._relationships

    def get_entity(self, name: str) -> Optional[Entity]:
        entity_id = self._ids.get(name)
        return None if entity_id is None else self._entities[entity_id]

    def entity_by_id(self, entity_id: int) -> Entity:
        return self._entities[entity_id]

    def _resolve(self, ref: EntityRef) -> Optional[Entity]:
        name = ref.name if isinstance(ref, Entity) else ref
        return self.get_entity(name)

    # -- mutation ---------------------------------------------------------

    def add_entity(self, entity: Entity) -> Entity:
        """Store entity unless its name is already present.

        The first entity stored under a name wins; later ones are ignored and
        the stored entity is returned. A copy of entity is stored with a fresh
        arena id and empty adjacency, so an entity taken from another graph
        is left untouched.
        """
        existing = self.get_entity(entity.name)
        if existing is not None:
            logger.debug("entity_exists", name=entity.name)
            return existing

        stored = replace(entity, id=len(self._entities), outgoing={}, incoming={})
        self._entities.append(stored)
        self._ids[stored.name] = stored.id
        return stored

    def add_relationship(
        self,
        source: EntityRef,
        target: EntityRef,
        type: str,
        description: str = "",
        source_reference: str = "",
    ) -> Optional[Relationship]:
        """Add a directed edge source --[type]--> target.

        Endpoints may be names or Entity objects; either way they are looked
        up by name. When an endpoint is not in the graph nothing changes and
        None is returned.
        """
        src = self._resolve(source)
        dst = self._resolve(target)
        if src is None or dst is None:
            logger.debug(
                "relationship_skipped_missing_entity",
                source=source.name if isinstance(source, Entity) else source,
                target=target.name if isinstance(target, Entity) else target,
                type=type,
            )
            return None

        relationship = Relationship(src.id, dst.id, type, description, source_reference)
        self._relationships.append(relationship)
        src.add_outgoing(dst.id, type, description)
        dst.add_incoming(src.id, type, description)
        return relationship

    def clear(self) -> None:
        self._entities.clear()
        self._ids.clear()
        self._relationships.clear()
        logger.info("graph_cleared")

    # -- neighbourhood ----------------------------------------------------

    def _entities_for(self, ids: list[int]) -> list[Entity]:
        return [self._entities[i] for i in ids]

    def all_neighbors(self, name: str, relation_type: Optional[str] = None) -> list[Entity]:
        """Entities linked to name in either direction, outgoing first."""
        entity = self.get_entity(name)
        if entity is None:
            return []
        return self._entities_for(entity.neighbor_ids(relation_type))

    def outgoing_neighbors(self, name: str, relation_type: Optional[str] = None) -> list[Entity]:
        """Entities name points to."""
        entity = self.get_entity(name)
        if entity is None:
            return []
        return self._entities_for(entity.outgoing_ids(relation_type))

    def incoming_neighbors(self, name: str, relation_type: Optional[str] = None) -> list[Entity]:
        """Entities pointing to name."""
        entity = self.get_entity(name)
        if entity is None:
            return []
        return self._entities_for(entity.incoming_ids(relation_type))

    def neighbor_ids(self, entity_id: int) -> set[int]:
        """Undirected neighbour ids of an entity."""
        return set(self._entities[entity_id].neighbor_ids())

    def relationship_types(self, name: str) -> list[str]:
        entity = self.get_entity(name)
        return entity.relationship_types() if entity is not None else []

    def relationship_counts(self, name: str) -> tuple[int, int, int]:
        entity = self.get_entity(name)
        return entity.relationship_counts() if entity is not None else (0, 0, 0)

    # -- traversal --------------------------------------------------------

    def shortest_path(self, from_name: str, to_name: str, max_depth: int = 5) -> list[Entity]:
        """Shortest undirected path from from_name to to_name.

        The path uses at most max_depth edges. Returns [] when either name is
        missing or no such path exists.
        """
        start = self.get_entity(from_name)
        goal = self.get_entity(to_name)
        if start is None or goal is None:
            return []
        if start.id == goal.id:
            return [start]

        queue: deque[list[int]] = deque([[start.id]])
        visited = {start.id}

        while queue and len(queue[0]) <= max_depth:
            path = queue.popleft()
            for neighbor_id in self._entities[path[-1]].neighbor_ids():
                if neighbor_id == goal.id:
                    return self._entities_for(path + [neighbor_id])
                if neighbor_id not in visited:
                    visited.add(neighbor_id)
                    queue.append(path + [neighbor_id])

        return []

    def hop_layers(self, name: str, max_hops: int) -> dict[int, list[Entity]]:
        """Entities reachable within max_hops grouped by hop distance.

        Each entity appears once, at the distance it was first discovered.
        """
        start = self.get_entity(name)
        if start is None:
            return {}

        layers: dict[int, list[Entity]] = {}
        queue: deque[tuple[int, int]] = deque([(start.id, 0)])
        visited = {start.id}

        while queue:
            current, depth = queue.popleft()
            layers.setdefault(depth, []).append(self._entities[current])
            if depth >= max_hops:
                continue
            for neighbor_id in self._entities[current].neighbor_ids():
                if neighbor_id not in visited:
                    visited.add(neighbor_id)
                    queue.append((neighbor_id, depth + 1))

        return layers

    def within_hops(self, name: str, max_hops: int) -> list[Entity]:
        """Every entity within max_hops of name (inclusive), start first."""
        return [entity for layer in self.hop_layers(name, max_hops).values() for entity in layer]

    # -- summaries --------------------------------------------------------

    def most_connected(self, limit: int = 5) -> list[tuple[Entity, int]]:
        """Entities with the most distinct neighbours."""
        counts = [(entity, len(entity.neighbor_ids())) for entity in self._entities]
        counts.sort(key=lambda item: item[1], reverse=True)
        return counts[:limit]

    def relationship_type_counts(self) -> dict[str, int]:
        """Relationship type frequencies, most frequent first."""
        return dict(Counter(r.type for r in self._relationships).most_common())

    def isolated_entities(self) -> list[Entity]:
        return [entity for entity in self._entities if not entity.neighbor_ids()]

    def describe(self, relationship: Relationship) -> str:
        source = self._entities[relationship.source_id].name
        target = self._entities[relationship.target_id].name
        return f"{source} --[{relationship.type}]--> {target}: {relationship.description}"
