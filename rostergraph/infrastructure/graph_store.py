"""SQL Graph Store — GraphStore implementation over graph_nodes / graph_edges.

Invariants:
    - upsert_entity is INSERT ... ON CONFLICT (key) DO UPDATE: concurrent writers converge, never duplicate
    - relate never creates a second edge for an existing (type, source, target) triple
    - Every filter value is a bound parameter; keys are never interpolated into SQL text
    - apply_batch is one transaction: all of its writes commit together or none do
    - Single-operation writes commit immediately
    - Every SQLAlchemy failure, read or write, surfaces as DatabaseError

Design Decisions:
    - Dialect-specific insert (postgresql / sqlite) chosen per bind: both support ON CONFLICT
    - relate with attrs updates them on conflict (submission state moves); without attrs it is DO NOTHING
    - Query results ordered by (type, source, target) so callers see deterministic rows
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rostergraph.core.domain_types import (
    EdgeType, EntityKey, EntityKind, entity_key,
)
from rostergraph.core.errors import DatabaseError
from rostergraph.core.graph_types import EdgeBatch, EdgePattern, EdgeRow, EntityRow
from rostergraph.models.graph_edge import GraphEdge
from rostergraph.models.graph_node import GraphNode

logger = logging.getLogger(__name__)


def _edge_filters(pattern: EdgePattern) -> list:
    clauses = [GraphEdge.edge_type.in_([t.value for t in pattern.edge_types])]
    if pattern.source is not None:
        clauses.append(GraphEdge.source_key == pattern.source)
    if pattern.target is not None:
        clauses.append(GraphEdge.target_key == pattern.target)
    if pattern.sources is not None:
        clauses.append(GraphEdge.source_key.in_(list(pattern.sources)))
    if pattern.targets is not None:
        clauses.append(GraphEdge.target_key.in_(list(pattern.targets)))
    if pattern.source_kind is not None:
        clauses.append(GraphEdge.source_key.startswith(f"{pattern.source_kind.value}:"))
    return clauses


def _delete_edges(pattern: EdgePattern):
    return delete(GraphEdge).where(*_edge_filters(pattern))


def _to_edge_row(edge: GraphEdge) -> EdgeRow:
    return EdgeRow(
        edge_type=EdgeType(edge.edge_type),
        source=EntityKey(edge.source_key),
        target=EntityKey(edge.target_key),
        attrs=dict(edge.attrs or {}),
    )


def _to_entity_row(node: GraphNode) -> EntityRow:
    return EntityRow(
        key=EntityKey(node.key),
        kind=EntityKind(node.kind),
        external_id=node.external_id,
        fields=dict(node.fields or {}),
    )


class SqlGraphStore:
    """GraphStore bound to one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise DatabaseError(f"Unsupported dialect '{dialect}'", "upsert")

    async def _core(self, stmt):
        """Execute a Core statement on the session's connection (same transaction)."""
        conn = await self.db.connection()
        return await conn.execute(stmt)

    # ─── Reads ──────────────────────────────────────────────────

    async def _select(self, stmt, operation: str) -> list:
        try:
            result = await self.db.execute(stmt.execution_options(populate_existing=True))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"{operation} failed: {e}")
            raise DatabaseError("Graph read failed", operation) from e

    async def get_entity(self, key: EntityKey) -> EntityRow | None:
        nodes = await self._select(select(GraphNode).where(GraphNode.key == key), "get_entity")
        return _to_entity_row(nodes[0]) if nodes else None

    async def get_entities(self, keys: list[EntityKey]) -> list[EntityRow]:
        if not keys:
            return []
        nodes = await self._select(
            select(GraphNode).where(GraphNode.key.in_(list(keys))).order_by(GraphNode.key),
            "get_entities",
        )
        return [_to_entity_row(n) for n in nodes]

    async def query(self, pattern: EdgePattern) -> list[EdgeRow]:
        edges = await self._select(
            select(GraphEdge)
            .where(*_edge_filters(pattern))
            .order_by(GraphEdge.edge_type, GraphEdge.source_key, GraphEdge.target_key),
            "query",
        )
        return [_to_edge_row(e) for e in edges]

    # ─── Single writes (commit immediately) ─────────────────────

    async def upsert_entity(
        self, kind: EntityKind, external_id: str, fields: dict,
    ) -> EntityKey:
        key = entity_key(kind, external_id)
        await self.apply_batch(EdgeBatch(
            upserts=[EntityRow(key=key, kind=kind, external_id=external_id, fields=fields)],
        ))
        return key

    async def relate(
        self, source: EntityKey, edge_type: EdgeType, target: EntityKey,
        attrs: dict | None = None,
    ) -> None:
        await self.apply_batch(EdgeBatch(
            relates=[EdgeRow(edge_type=edge_type, source=source, target=target, attrs=attrs or {})],
        ))

    async def unrelate(self, pattern: EdgePattern) -> int:
        try:
            result = await self._core(_delete_edges(pattern))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"unrelate failed: {e}")
            raise DatabaseError("Edge delete failed", "unrelate") from e
        return result.rowcount or 0

    # ─── Batch ──────────────────────────────────────────────────

    async def apply_batch(self, batch: EdgeBatch) -> None:
        """Apply upserts, deletes, entity removals, then relates in one transaction."""
        if batch.is_empty:
            return
        try:
            await self._write_upserts(batch.upserts)
            for pattern in batch.deletes:
                await self._core(_delete_edges(pattern))
            await self._delete_entities(batch.delete_entities)
            await self._write_relates(batch.relates)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Graph batch failed: {e}")
            raise DatabaseError("Graph batch write failed", "batch") from e
        except BaseException:
            await self.db.rollback()
            raise

    async def _write_upserts(self, rows: list[EntityRow]) -> None:
        if not rows:
            return
        now = datetime.now(timezone.utc)
        latest = {row.key: row for row in rows}
        stmt = self._insert(GraphNode).values([
            {
                "key": row.key,
                "kind": row.kind.value,
                "external_id": row.external_id,
                "fields": row.fields,
                "created_at": now,
                "updated_at": now,
            }
            for row in latest.values()
        ])
        stmt = stmt.on_conflict_do_update(
            index_elements=[GraphNode.key],
            set_={
                "fields": stmt.excluded.fields,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self._core(stmt)

    async def _delete_entities(self, keys: list[EntityKey]) -> None:
        if not keys:
            return
        await self._core(
            delete(GraphEdge).where(or_(
                GraphEdge.source_key.in_(list(keys)),
                GraphEdge.target_key.in_(list(keys)),
            )),
        )
        await self._core(
            delete(GraphNode)
            .where(GraphNode.key.in_(list(keys))),
        )

    async def _write_relates(self, rows: list[EdgeRow]) -> None:
        if not rows:
            return
        now = datetime.now(timezone.utc)
        latest = {(r.edge_type, r.source, r.target): r for r in rows}
        plain = [r for r in latest.values() if not r.attrs]
        attributed = [r for r in latest.values() if r.attrs]
        pk = [GraphEdge.edge_type, GraphEdge.source_key, GraphEdge.target_key]

        if plain:
            stmt = self._insert(GraphEdge).values([
                {
                    "edge_type": r.edge_type.value, "source_key": r.source,
                    "target_key": r.target, "attrs": {}, "created_at": now,
                }
                for r in plain
            ])
            await self._core(stmt.on_conflict_do_nothing(index_elements=pk))
        if attributed:
            stmt = self._insert(GraphEdge).values([
                {
                    "edge_type": r.edge_type.value, "source_key": r.source,
                    "target_key": r.target, "attrs": r.attrs, "created_at": now,
                }
                for r in attributed
            ])
            stmt = stmt.on_conflict_do_update(
                index_elements=pk, set_={"attrs": stmt.excluded.attrs},
            )
            await self._core(stmt)
