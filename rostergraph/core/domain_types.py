"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - Entity keys are always "<kind>:<external id>" (never a bare id in the store)
    - Every edge type has a fixed direction (source kind -> target kind)
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders
    - Role priority lives next to the Role enum so every caller ranks roles the same way
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

EntityKey = NewType("EntityKey", str)      # "user:1234"
ExternalId = NewType("ExternalId", str)    # provider-side id, "1234"
CourseId = NewType("CourseId", str)


# ─── Enums ───────────────────────────────────────────────────────

class EntityKind(str, Enum):
    """Node kinds stored in graph_nodes."""
    USER = "user"
    COURSE = "course"
    WORK = "work"
    CELL = "cell"
    TOKEN = "token"


class EdgeType(str, Enum):
    """Directed edge types stored in graph_edges."""
    IS_OWNER = "is_owner"          # user -> course
    IS_TEACHER = "is_teacher"      # user -> course
    IS_STUDENT = "is_student"      # user -> course
    IS_COORD = "is_coord"          # user -> course
    IS_FROM = "is_from"            # cell -> course, work -> course
    BELONGS_TO = "belongs_to"      # cell -> user (teacher)
    IS_IN = "is_in"                # user -> cell
    IS_ASSIGNED = "is_assigned"    # user -> work


class RosterClass(str, Enum):
    """Membership classes reconciled by a roster sync, each owning one edge type."""
    TEACHER = "teacher"
    STUDENT = "student"

    @property
    def edge_type(self) -> EdgeType:
        return _ROSTER_EDGES[self]


_ROSTER_EDGES = {
    RosterClass.TEACHER: EdgeType.IS_TEACHER,
    RosterClass.STUDENT: EdgeType.IS_STUDENT,
}


class SubmissionState(str, Enum):
    """Provider submission states carried on is_assigned edges."""
    NEW = "NEW"
    CREATED = "CREATED"
    TURNED_IN = "TURNED_IN"
    RETURNED = "RETURNED"


class Role(str, Enum):
    """Single-label role, used only where one label is required."""
    OWNER = "owner"
    TEACHER = "teacher"
    COORDINATOR = "coordinator"
    STUDENT = "student"
    NONE = "none"


# Highest first. NONE is the fallback, not part of the ranking.
ROLE_PRIORITY: tuple[Role, ...] = (
    Role.OWNER, Role.TEACHER, Role.COORDINATOR, Role.STUDENT,
)

ROLE_EDGES: dict[Role, EdgeType] = {
    Role.OWNER: EdgeType.IS_OWNER,
    Role.TEACHER: EdgeType.IS_TEACHER,
    Role.COORDINATOR: EdgeType.IS_COORD,
    Role.STUDENT: EdgeType.IS_STUDENT,
}


class AuthFailure(str, Enum):
    """Reasons a request fails authentication."""
    UNAUTHENTICATED = "unauthenticated"
    EXPIRED = "expired"
    INVALID = "invalid"


class SyncStatus(str, Enum):
    """Outcome of one roster class within a sync pass."""
    COMMITTED = "committed"
    FAILED = "failed"


# ─── Key helpers ─────────────────────────────────────────────────

def entity_key(kind: EntityKind, external_id: str) -> EntityKey:
    """Build the store key for an entity."""
    return EntityKey(f"{kind.value}:{external_id}")


def split_key(key: str) -> tuple[EntityKind, ExternalId]:
    """Inverse of entity_key. Raises ValueError on a key without a known kind."""
    kind, sep, external_id = key.partition(":")
    if not sep or not external_id:
        raise ValueError(f"Malformed entity key: {key!r}")
    return EntityKind(kind), ExternalId(external_id)
