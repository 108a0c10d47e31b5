"""Cell Service — replaces a teacher's cell (advisory sub-group) within a course.

Invariants:
    - Only a caller holding is_teacher on the course may own a cell (403 otherwise)
    - At most one cell per (teacher, course): the new cell and the removal of every
      previous cell (with its is_in / belongs_to / is_from edges) commit in one batch
    - Cell ids are internal (uuid hex), never provider ids

Design Decisions:
    - Listed students are taken as given: a cell may be drawn up before the first roster sync
    - Replace, not patch: a POST always yields a new cell id, old memberships are retired with it
    - Per (course, teacher) lock stops two concurrent replaces from both surviving
"""

import logging
import uuid

from rostergraph.core.domain_types import EdgeType, EntityKind, entity_key
from rostergraph.core.errors import ErrorContext, ValidationError
from rostergraph.core.graph_types import EdgeBatch, EdgeRow, EntityRow
from rostergraph.core.repository_protocols import GraphStore
from rostergraph.core.session_state import Identity
from rostergraph.services.authorization import AuthorizationResolver
from rostergraph.services.call_bounds import bounded
from rostergraph.services.course_graph import teacher_cell_keys
from rostergraph.services.keyed_locks import cell_lock

logger = logging.getLogger(__name__)


class CellService:
    def __init__(self, store: GraphStore, store_timeout_seconds: float = 15.0):
        self.store = store
        self.resolver = AuthorizationResolver(store)
        self.store_timeout_seconds = store_timeout_seconds

    async def replace_cell(
        self, course_id: str, actor: Identity, cell_name: str, student_ids: list[str],
    ) -> str:
        """Create the caller's cell, retiring any previous one. Returns the new cell id."""
        context = ErrorContext(course_id=course_id, user_id=actor.id)
        name = (cell_name or "").strip()
        if not name:
            raise ValidationError("cellName must not be empty", "cellName", context)
        students = list(dict.fromkeys(s.strip() for s in student_ids if s and s.strip()))

        await self.resolver.require_flags(
            actor.id, course_id, "teacher", lambda f: f.is_teacher,
        )
        course_key = entity_key(EntityKind.COURSE, course_id)
        teacher_key = entity_key(EntityKind.USER, actor.id)
        student_keys = [entity_key(EntityKind.USER, s) for s in students]

        async with cell_lock(course_id, actor.id):
            previous = await teacher_cell_keys(self.store, teacher_key, course_key)
            cell_id = uuid.uuid4().hex
            cell_key = entity_key(EntityKind.CELL, cell_id)
            batch = EdgeBatch(
                upserts=[EntityRow(
                    key=cell_key, kind=EntityKind.CELL, external_id=cell_id,
                    fields={"name": name, "course_id": course_id, "teacher_id": actor.id},
                )],
                delete_entities=list(previous),
                relates=[
                    EdgeRow(edge_type=EdgeType.IS_FROM, source=cell_key, target=course_key),
                    EdgeRow(edge_type=EdgeType.BELONGS_TO, source=cell_key, target=teacher_key),
                    *(
                        EdgeRow(edge_type=EdgeType.IS_IN, source=key, target=cell_key)
                        for key in student_keys
                    ),
                ],
            )
            await bounded(
                self.store.apply_batch(batch), self.store_timeout_seconds, "graph store", context,
            )

        logger.info(
            f"Cell replaced ({len(previous)} retired, {len(student_keys)} students)",
            extra={"course_id": course_id, "user_id": actor.id},
        )
        return cell_id
