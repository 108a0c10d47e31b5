"""Authorization Resolver — a caller's role flags and owned cell for one course.

Invariants:
    - Flags come from the role edges actor -> course; they may overlap
    - primary_role is derived from the flags (core/roles.py) and never hides one
    - owned_cell is resolved only for teachers; a teacher without a cell gets None, not an error
    - require_course raises ResourceNotFoundError before any role check runs

Design Decisions:
    - One edge query for all four role types (filtered by source and target)
    - Permission predicates live on RoleFlags so routes and services share one rule set
"""

import logging
from dataclasses import dataclass

from rostergraph.core.domain_types import (
    EntityKind, ROLE_EDGES, Role, entity_key,
)
from rostergraph.core.errors import ErrorContext, ForbiddenError, ResourceNotFoundError
from rostergraph.core.graph_types import EdgePattern, EntityRow
from rostergraph.core.repository_protocols import GraphStore
from rostergraph.core.roles import RoleFlags
from rostergraph.services.course_graph import CellView, load_cells, teacher_cell_keys

logger = logging.getLogger(__name__)


@dataclass
class RoleResolution:
    flags: RoleFlags
    owned_cell: CellView | None = None

    @property
    def primary_role(self) -> Role:
        return self.flags.primary_role

    def to_dict(self) -> dict:
        return {
            "is_owner": self.flags.is_owner,
            "is_teacher": self.flags.is_teacher,
            "is_coord": self.flags.is_coord,
            "is_student": self.flags.is_student,
            "primary_role": self.primary_role.value,
            "owned_cell": self.owned_cell.to_dict() if self.owned_cell else None,
        }


class AuthorizationResolver:
    """Reads role edges and cell ownership from the graph store."""

    def __init__(self, store: GraphStore):
        self.store = store

    async def require_course(self, course_id: str) -> EntityRow:
        course = await self.store.get_entity(entity_key(EntityKind.COURSE, course_id))
        if course is None:
            raise ResourceNotFoundError(
                "Course", course_id, ErrorContext(course_id=course_id),
            )
        return course

    async def role_flags(self, actor_id: str, course_id: str) -> RoleFlags:
        rows = await self.store.query(EdgePattern(
            edge_types=tuple(ROLE_EDGES.values()),
            source=entity_key(EntityKind.USER, actor_id),
            target=entity_key(EntityKind.COURSE, course_id),
        ))
        return RoleFlags.from_edge_types({row.edge_type for row in rows})

    async def resolve_role(self, actor_id: str, course_id: str) -> RoleResolution:
        flags = await self.role_flags(actor_id, course_id)
        owned_cell = None
        if flags.is_teacher:
            owned_cell = await self.owned_cell(actor_id, course_id)
        return RoleResolution(flags=flags, owned_cell=owned_cell)

    async def owned_cell(self, actor_id: str, course_id: str) -> CellView | None:
        course_key = entity_key(EntityKind.COURSE, course_id)
        keys = await teacher_cell_keys(
            self.store, entity_key(EntityKind.USER, actor_id), course_key,
        )
        if not keys:
            return None
        if len(keys) > 1:
            logger.warning(
                f"Teacher owns {len(keys)} cells in one course, using the first",
                extra={"course_id": course_id, "user_id": actor_id},
            )
        cells = await load_cells(self.store, course_key, cell_keys=keys[:1])
        return cells[0] if cells else None

    async def require_flags(
        self, actor_id: str, course_id: str, allowed: str, predicate,
    ) -> RoleFlags:
        """Require the course, then require predicate(flags); allowed names the roles for the message."""
        await self.require_course(course_id)
        flags = await self.role_flags(actor_id, course_id)
        if not predicate(flags):
            raise ForbiddenError(
                f"Forbidden: requires {allowed} of this course.",
                ErrorContext(course_id=course_id, user_id=actor_id),
            )
        return flags
