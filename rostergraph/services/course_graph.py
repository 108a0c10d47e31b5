"""Course Graph Traversals — shared read paths over a course's roster subgraph.

Invariants:
    - Read-only: nothing here writes to the store
    - Cells of a course are found via is_from (cell -> course), their teacher via belongs_to,
      their students via is_in (user -> cell)
    - Missing user rows yield a key-only view, never an error

Design Decisions:
    - One query per edge type for all cells at once: no per-cell round trips
    - Views are plain dicts so routes can return them without another mapping layer
"""

from dataclasses import dataclass, field

from rostergraph.core.domain_types import (
    EdgeType, EntityKey, EntityKind, ROLE_EDGES, Role,
)
from rostergraph.core.graph_types import EdgePattern, EntityRow
from rostergraph.core.repository_protocols import GraphStore


def user_view(key: EntityKey, row: EntityRow | None) -> dict:
    fields = row.fields if row else {}
    return {
        "id": key.partition(":")[2],
        "name": fields.get("name"),
        "email": fields.get("email"),
        "photo_url": fields.get("photo_url"),
    }


@dataclass
class CellView:
    key: EntityKey
    name: str
    teacher_key: EntityKey | None = None
    student_keys: list[EntityKey] = field(default_factory=list)
    students: list[dict] = field(default_factory=list)
    teacher: dict | None = None

    @property
    def id(self) -> str:
        return self.key.partition(":")[2]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "teacher": self.teacher,
            "students": self.students,
        }


async def users_by_key(store: GraphStore, keys: set[EntityKey]) -> dict[EntityKey, dict]:
    rows = {row.key: row for row in await store.get_entities(sorted(keys))}
    return {key: user_view(key, rows.get(key)) for key in keys}


async def load_cells(
    store: GraphStore,
    course_key: EntityKey,
    cell_keys: list[EntityKey] | None = None,
    with_users: bool = True,
) -> list[CellView]:
    """Cells attached to a course, optionally narrowed to cell_keys."""
    if cell_keys is None:
        links = await store.query(EdgePattern.of(
            EdgeType.IS_FROM, target=course_key, source_kind=EntityKind.CELL,
        ))
        cell_keys = [row.source for row in links]
    if not cell_keys:
        return []

    cells = {
        row.key: CellView(key=row.key, name=row.fields.get("name", ""))
        for row in await store.get_entities(cell_keys)
    }
    for row in await store.query(EdgePattern.of(
        EdgeType.BELONGS_TO, sources=tuple(cells),
    )):
        cells[row.source].teacher_key = row.target
    for row in await store.query(EdgePattern.of(
        EdgeType.IS_IN, targets=tuple(cells),
    )):
        cells[row.target].student_keys.append(row.source)

    if with_users:
        keys = {k for c in cells.values() for k in c.student_keys}
        keys |= {c.teacher_key for c in cells.values() if c.teacher_key}
        users = await users_by_key(store, keys)
        for cell in cells.values():
            cell.students = [users[k] for k in cell.student_keys]
            cell.teacher = users[cell.teacher_key] if cell.teacher_key else None
    return sorted(cells.values(), key=lambda c: (c.name, c.key))


async def teacher_cell_keys(
    store: GraphStore, teacher_key: EntityKey, course_key: EntityKey,
) -> list[EntityKey]:
    """Cells owned by teacher_key inside course_key (normally zero or one)."""
    owned = await store.query(EdgePattern.of(
        EdgeType.BELONGS_TO, target=teacher_key, source_kind=EntityKind.CELL,
    ))
    if not owned:
        return []
    in_course = await store.query(EdgePattern.of(
        EdgeType.IS_FROM, sources=tuple(row.source for row in owned), target=course_key,
    ))
    return sorted(row.source for row in in_course)


async def role_members(store: GraphStore, course_key: EntityKey) -> dict[Role, list[EntityKey]]:
    """Users holding each role edge into the course."""
    by_edge = {edge: role for role, edge in ROLE_EDGES.items()}
    members: dict[Role, list[EntityKey]] = {role: [] for role in ROLE_EDGES}
    rows = await store.query(EdgePattern(
        edge_types=tuple(ROLE_EDGES.values()), target=course_key,
    ))
    for row in rows:
        members[by_edge[row.edge_type]].append(row.source)
    return members
