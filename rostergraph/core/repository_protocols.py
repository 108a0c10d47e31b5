"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Provider list methods return flat dicts already unwrapped from the wire format;
      validation of those dicts happens in core/reconcile.py
"""

from typing import Protocol

from rostergraph.core.domain_types import EdgeType, EntityKey, EntityKind
from rostergraph.core.graph_types import EdgeBatch, EdgePattern, EdgeRow, EntityRow
from rostergraph.core.session_state import Credentials, Identity


class GraphStore(Protocol):
    """Typed entities plus directed, typed, unique edges."""
    async def upsert_entity(
        self, kind: EntityKind, external_id: str, fields: dict,
    ) -> EntityKey: ...
    async def get_entity(self, key: EntityKey) -> EntityRow | None: ...
    async def get_entities(self, keys: list[EntityKey]) -> list[EntityRow]: ...
    async def relate(
        self, source: EntityKey, edge_type: EdgeType, target: EntityKey,
        attrs: dict | None = None,
    ) -> None: ...
    async def unrelate(self, pattern: EdgePattern) -> int: ...
    async def query(self, pattern: EdgePattern) -> list[EdgeRow]: ...
    async def apply_batch(self, batch: EdgeBatch) -> None: ...


class RosterProvider(Protocol):
    """Upstream LMS. Member dicts: {id, name, email, photo_url}."""
    async def list_courses(self, teacher_id: str = "me") -> list[dict]: ...
    async def get_course(self, course_id: str) -> dict: ...
    async def list_teachers(self, course_id: str) -> list[dict]: ...
    async def list_students(self, course_id: str) -> list[dict]: ...
    async def list_course_work(self, course_id: str) -> list[dict]: ...
    async def list_submissions(
        self, course_id: str, work_id: str, user_id: str | None = None,
    ) -> list[dict]: ...


class IdentityProvider(Protocol):
    """OAuth2 identity provider."""
    async def exchange_code(self, code: str) -> Credentials: ...
    async def refresh_token(self, refresh_token: str) -> Credentials: ...
    async def get_user_info(self, access_token: str) -> Identity: ...
