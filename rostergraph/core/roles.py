"""Role Resolution — pure ranking of independently-held course roles.

Invariants:
    - Flags are independent; holding one never clears another
    - primary_role follows ROLE_PRIORITY (owner > teacher > coordinator > student), NONE otherwise
    - primary_role is a label only; permission checks read the flags

Design Decisions:
    - Flags built from the set of edge types found between actor and course (one query, no per-role lookups)
"""

from dataclasses import dataclass

from rostergraph.core.domain_types import EdgeType, Role, ROLE_EDGES, ROLE_PRIORITY


@dataclass(frozen=True)
class RoleFlags:
    is_owner: bool = False
    is_teacher: bool = False
    is_coord: bool = False
    is_student: bool = False

    @classmethod
    def from_edge_types(cls, edge_types: set[str] | set[EdgeType]) -> "RoleFlags":
        held = {EdgeType(t) for t in edge_types}
        return cls(
            is_owner=ROLE_EDGES[Role.OWNER] in held,
            is_teacher=ROLE_EDGES[Role.TEACHER] in held,
            is_coord=ROLE_EDGES[Role.COORDINATOR] in held,
            is_student=ROLE_EDGES[Role.STUDENT] in held,
        )

    def holds(self, role: Role) -> bool:
        return {
            Role.OWNER: self.is_owner,
            Role.TEACHER: self.is_teacher,
            Role.COORDINATOR: self.is_coord,
            Role.STUDENT: self.is_student,
        }.get(role, False)

    @property
    def primary_role(self) -> Role:
        for role in ROLE_PRIORITY:
            if self.holds(role):
                return role
        return Role.NONE

    @property
    def any(self) -> bool:
        return self.primary_role is not Role.NONE

    @property
    def can_sync(self) -> bool:
        return self.is_owner or self.is_teacher

    @property
    def can_view_stats(self) -> bool:
        return self.is_owner or self.is_teacher or self.is_coord
