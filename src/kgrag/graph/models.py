"""Graph node and edge types.

Entities live in a single arena owned by EntityGraph and refer to each other
only by integer id, so no object holds a reference to another entity.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Neighbor:
    """One adjacency entry: the entity at the other end of a typed edge."""

    entity_id: int
    relation_type: str
    description: str = ""


@dataclass
class Entity:
    """A named, typed node of the knowledge graph.

    ``outgoing`` and ``incoming`` map a relation type to the neighbours reached
    through it, in insertion order and without duplicate neighbours. They are
    maintained by EntityGraph.add_relationship only.
    """

    name: str
    type: str = ""
    attributes: str = ""
    source_reference: str = ""
    id: int = -1
    outgoing: dict[str, list[Neighbor]] = field(default_factory=dict, repr=False)
    incoming: dict[str, list[Neighbor]] = field(default_factory=dict, repr=False)

    def __str__(self) -> str:
        return f"{self.name} ({self.type}) - {self.attributes}"

    def _link(self, side: dict[str, list[Neighbor]], other_id: int, relation_type: str, description: str) -> None:
        entries = side.setdefault(relation_type, [])
        if not any(n.entity_id == other_id for n in entries):
            entries.append(Neighbor(other_id, relation_type, description))

    def add_outgoing(self, target_id: int, relation_type: str, description: str = "") -> None:
        self._link(self.outgoing, target_id, relation_type, description)

    def add_incoming(self, source_id: int, relation_type: str, description: str = "") -> None:
        self._link(self.incoming, source_id, relation_type, description)

    def outgoing_ids(self, relation_type: str | None = None) -> list[int]:
        return _neighbor_ids(self.outgoing, relation_type)

    def incoming_ids(self, relation_type: str | None = None) -> list[int]:
        return _neighbor_ids(self.incoming, relation_type)

    def neighbor_ids(self, relation_type: str | None = None) -> list[int]:
        """Outgoing then incoming neighbour ids, de-duplicated."""
        return list(dict.fromkeys(self.outgoing_ids(relation_type) + self.incoming_ids(relation_type)))

    def relationship_types(self) -> list[str]:
        return list(dict.fromkeys(list(self.outgoing) + list(self.incoming)))

    def relationship_counts(self) -> tuple[int, int, int]:
        """(outgoing, incoming, total) adjacency entry counts."""
        out_count = sum(len(v) for v in self.outgoing.values())
        in_count = sum(len(v) for v in self.incoming.values())
        return out_count, in_count, out_count + in_count


def _neighbor_ids(side: dict[str, list[Neighbor]], relation_type: str | None) -> list[int]:
    if relation_type is not None:
        return [n.entity_id for n in side.get(relation_type, [])]
    return list(dict.fromkeys(n.entity_id for entries in side.values() for n in entries))


@dataclass(frozen=True)
class Relationship:
    """A typed, directed edge between two arena entities."""

    source_id: int
    target_id: int
    type: str
    description: str = ""
    source_reference: str = ""
