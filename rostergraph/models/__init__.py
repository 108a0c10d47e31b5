"""ORM Models — SQLAlchemy declarative models for the roster graph.

Invariants:
    - All models inherit from Base (db/base.py)
    - Two tables hold the whole graph: graph_nodes and graph_edges

Design Decisions:
    - One file per table for locality
    - All models imported here so Base.metadata is complete before create_all or autogenerate
"""

from rostergraph.models.graph_node import GraphNode  # noqa: F401
from rostergraph.models.graph_edge import GraphEdge  # noqa: F401
