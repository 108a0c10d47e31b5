"""Graph Types — value objects exchanged with the GraphStore.

Invariants:
    - EdgePattern fields left as None match anything; set fields match exactly
    - A pattern always names at least one edge type (no unbounded scans)
    - EdgeBatch applies deletes before creates, entities before edges

Design Decisions:
    - Patterns are data, not query strings: the store compiles them to bound parameters
"""

from dataclasses import dataclass, field

from rostergraph.core.domain_types import EdgeType, EntityKey, EntityKind


@dataclass(frozen=True)
class EdgePattern:
    """Match edges by type and optional endpoint constraints."""
    edge_types: tuple[EdgeType, ...]
    source: EntityKey | None = None
    target: EntityKey | None = None
    sources: tuple[EntityKey, ...] | None = None
    targets: tuple[EntityKey, ...] | None = None
    source_kind: EntityKind | None = None

    def __post_init__(self):
        if not self.edge_types:
            raise ValueError("EdgePattern requires at least one edge type")

    @classmethod
    def of(cls, edge_type: EdgeType, **kwargs) -> "EdgePattern":
        return cls(edge_types=(edge_type,), **kwargs)


@dataclass(frozen=True)
class EdgeRow:
    edge_type: EdgeType
    source: EntityKey
    target: EntityKey
    attrs: dict = field(default_factory=dict)


@dataclass(frozen=True)
class EntityRow:
    key: EntityKey
    kind: EntityKind
    external_id: str
    fields: dict = field(default_factory=dict)


@dataclass
class EdgeBatch:
    """Writes applied atomically by GraphStore.apply_batch."""
    upserts: list[EntityRow] = field(default_factory=list)
    deletes: list[EdgePattern] = field(default_factory=list)
    delete_entities: list[EntityKey] = field(default_factory=list)
    relates: list[EdgeRow] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.upserts or self.deletes or self.delete_entities or self.relates)
