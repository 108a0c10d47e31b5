"""GraphEdge ORM — typed, directed, attributed edges between graph nodes.

Invariants:
    - (edge_type, source_key, target_key) is the primary key: at most one edge per triple
    - Direction per type is fixed (see EdgeType in core/domain_types.py)
    - attrs is a JSON object (submission state/grade/late/link on is_assigned, empty elsewhere)

Design Decisions:
    - No FK to graph_nodes: cell deletion removes its edges explicitly inside the same batch
    - Composite index on (edge_type, target_key): most reads are "all edges of type T into X"
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from rostergraph.db.base import Base


class GraphEdge(Base):
    """Typed edge in the roster graph."""
    __tablename__ = "graph_edges"
    __table_args__ = (
        Index("ix_graph_edges_type_target", "edge_type", "target_key"),
    )

    edge_type: Mapped[str] = mapped_column(String(20), primary_key=True)
    source_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    target_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    attrs: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
