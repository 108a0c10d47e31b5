"""Stats Service — gathers the course subgraph and hands it to core/course_stats.py.

Invariants:
    - Owner, teacher or coordinator only (403 otherwise, 404 before that if no course)
    - Read-only, four edge queries regardless of cell count
"""

import logging

from rostergraph.core.course_stats import CellInput, SubmissionInput, compute_course_stats
from rostergraph.core.domain_types import EdgeType, EntityKind, entity_key
from rostergraph.core.graph_types import EdgePattern
from rostergraph.core.repository_protocols import GraphStore
from rostergraph.core.session_state import Identity
from rostergraph.services.authorization import AuthorizationResolver
from rostergraph.services.course_graph import load_cells

logger = logging.getLogger(__name__)


class StatsService:
    def __init__(self, store: GraphStore):
        self.store = store
        self.resolver = AuthorizationResolver(store)

    async def course_stats(self, course_id: str, actor: Identity) -> dict:
        await self.resolver.require_flags(
            actor.id, course_id, "owner, teacher or coordinator", lambda f: f.can_view_stats,
        )
        course_key = entity_key(EntityKind.COURSE, course_id)

        students = {
            row.source
            for row in await self.store.query(EdgePattern.of(EdgeType.IS_STUDENT, target=course_key))
        }
        work_links = await self.store.query(EdgePattern.of(
            EdgeType.IS_FROM, target=course_key, source_kind=EntityKind.WORK,
        ))
        work_rows = await self.store.get_entities([row.source for row in work_links])
        works = {row.key: _max_points(row.fields) for row in work_rows}

        submissions = []
        if works:
            submissions = [
                SubmissionInput(user_key=row.source, work_key=row.target, attrs=row.attrs)
                for row in await self.store.query(EdgePattern.of(
                    EdgeType.IS_ASSIGNED, targets=tuple(works),
                ))
            ]

        cells = [
            CellInput(
                cell_id=cell.id,
                name=cell.name,
                teacher_name=(cell.teacher or {}).get("name"),
                student_keys=set(cell.student_keys),
            )
            for cell in await load_cells(self.store, course_key)
        ]
        stats = compute_course_stats(students, works, cells, submissions)
        logger.info(
            f"Stats computed over {len(works)} works",
            extra={"course_id": course_id, "user_id": actor.id},
        )
        return {"course_id": course_id, **stats}


def _max_points(fields: dict) -> float | None:
    value = fields.get("max_points")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return float(value)
    return None
