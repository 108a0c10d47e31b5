"""Graph schema — graph_nodes and graph_edges.

Revision ID: 001_graph_schema
Revises:
Create Date: 2026-10-19

One node table for every entity kind (user, course, work, cell, token) keyed by
"<kind>:<external id>", one edge table keyed by (edge_type, source_key, target_key).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_graph_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "graph_nodes",
        sa.Column("key", sa.String(255), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("fields", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_graph_nodes_kind", "graph_nodes", ["kind"])

    op.create_table(
        "graph_edges",
        sa.Column("edge_type", sa.String(20), primary_key=True),
        sa.Column("source_key", sa.String(255), primary_key=True),
        sa.Column("target_key", sa.String(255), primary_key=True),
        sa.Column("attrs", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_graph_edges_type_target", "graph_edges", ["edge_type", "target_key"])


def downgrade() -> None:
    op.drop_index("ix_graph_edges_type_target", table_name="graph_edges")
    op.drop_table("graph_edges")
    op.drop_index("ix_graph_nodes_kind", table_name="graph_nodes")
    op.drop_table("graph_nodes")
