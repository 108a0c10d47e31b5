"""GraphNode ORM — every stored entity (user, course, work, cell, token) as one row.

Invariants:
    - key is "<kind>:<external_id>" and is the primary key (upsert target)
    - fields is a JSON object; an upsert replaces it wholesale (last write wins)
    - created_at is set once; updated_at moves on every upsert

Design Decisions:
    - Single table over per-kind tables: edges reference any kind by key without polymorphic FKs
    - kind denormalized from key: kind-scoped scans without string parsing
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from rostergraph.db.base import Base


class GraphNode(Base):
    """Typed entity in the roster graph."""
    __tablename__ = "graph_nodes"
    __table_args__ = (
        Index("ix_graph_nodes_kind", "kind"),
    )

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    fields: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
