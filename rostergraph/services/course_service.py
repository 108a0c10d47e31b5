"""Course Service — start, role assignment, detail assembly and course listing.

Invariants:
    - A course has at most one owner; the owner edge is created once and never moved
    - start_course by the existing owner is idempotent; by anyone else -> ConflictError
    - assign_role grants teacher or coordinator only, and only once per caller
      (already teacher or coordinator -> ConflictError)
    - course_detail requires at least one role on the course (403 otherwise)
    - The caller's own User entity is upserted from the session identity on every write here
    - start_course and assign_role run their check and write under the course lock, so two
      concurrent starts cannot both pass the owner check

Design Decisions:
    - Course created_at is kept from the first start; last_updated moves on every start
    - Listing annotates provider courses with store state in two queries (entities + role edges)
"""

import logging
from datetime import datetime, timezone

from rostergraph.core.domain_types import (
    EntityKind, ROLE_EDGES, Role, entity_key, split_key,
)
from rostergraph.core.errors import (
    ConflictError, ErrorContext, ForbiddenError, UpstreamError, ValidationError,
)
from rostergraph.core.graph_types import EdgeBatch, EdgePattern, EdgeRow, EntityRow
from rostergraph.core.repository_protocols import GraphStore, RosterProvider
from rostergraph.core.roles import RoleFlags
from rostergraph.core.session_state import Identity
from rostergraph.services.authorization import AuthorizationResolver
from rostergraph.services.call_bounds import bounded
from rostergraph.services.course_graph import load_cells, role_members, users_by_key
from rostergraph.services.keyed_locks import course_lock

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (Role.TEACHER, Role.COORDINATOR)

_COURSE_FIELDS = ("name", "section", "state", "link")


def identity_profile(actor: Identity) -> EntityRow:
    return EntityRow(
        key=entity_key(EntityKind.USER, actor.id),
        kind=EntityKind.USER,
        external_id=actor.id,
        fields={"name": actor.name, "email": actor.email, "photo_url": actor.picture},
    )


def course_view(row: EntityRow) -> dict:
    return {"id": row.external_id, **row.fields}


def flags_view(flags: RoleFlags) -> dict:
    return {
        "is_owner": flags.is_owner,
        "is_teacher": flags.is_teacher,
        "is_coord": flags.is_coord,
        "is_student": flags.is_student,
        "primary_role": flags.primary_role.value,
    }


class CourseService:
    def __init__(
        self,
        store: GraphStore,
        provider_timeout_seconds: float = 20.0,
        store_timeout_seconds: float = 15.0,
    ):
        self.store = store
        self.resolver = AuthorizationResolver(store)
        self.provider_timeout_seconds = provider_timeout_seconds
        self.store_timeout_seconds = store_timeout_seconds

    # ─── Start ──────────────────────────────────────────────────

    async def start_course(
        self, course_id: str, actor: Identity, provider: RosterProvider,
    ) -> dict:
        """Mirror a provider course and make the caller its owner."""
        context = ErrorContext(course_id=course_id, user_id=actor.id)
        course_key = entity_key(EntityKind.COURSE, course_id)
        user_key = entity_key(EntityKind.USER, actor.id)

        async with course_lock(course_id):
            owners = await self.store.query(
                EdgePattern.of(ROLE_EDGES[Role.OWNER], target=course_key),
            )
            if any(row.source != user_key for row in owners):
                raise ConflictError("Course already started by another owner.", context)
            row = await self._mirror_course(course_id, actor, provider, context)

        logger.info(
            "Course started" if not owners else "Course refreshed by owner",
            extra={"course_id": course_id, "user_id": actor.id},
        )
        return course_view(row)

    async def _mirror_course(
        self, course_id: str, actor: Identity, provider: RosterProvider, context: ErrorContext,
    ) -> EntityRow:
        course_key = entity_key(EntityKind.COURSE, course_id)
        try:
            remote = await bounded(
                provider.get_course(course_id),
                self.provider_timeout_seconds, "roster provider", context,
            )
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(f"Course fetch failed: {e}", exc_info=True, extra={"course_id": course_id})
            raise UpstreamError(str(e), "roster provider", context=context) from e

        existing = await self.store.get_entity(course_key)
        now = datetime.now(timezone.utc).isoformat()
        fields = {name: (remote or {}).get(name) for name in _COURSE_FIELDS}
        fields["created_at"] = existing.fields.get("created_at", now) if existing else now
        fields["last_updated"] = now

        row = EntityRow(key=course_key, kind=EntityKind.COURSE, external_id=course_id, fields=fields)
        await bounded(
            self.store.apply_batch(EdgeBatch(
                upserts=[row, identity_profile(actor)],
                relates=[EdgeRow(
                    edge_type=ROLE_EDGES[Role.OWNER],
                    source=entity_key(EntityKind.USER, actor.id), target=course_key,
                )],
            )),
            self.store_timeout_seconds, "graph store", context,
        )
        return row

    # ─── Roles ──────────────────────────────────────────────────

    async def assign_role(self, course_id: str, actor: Identity, role: Role) -> dict:
        """Grant the caller teacher or coordinator on an existing course."""
        context = ErrorContext(course_id=course_id, user_id=actor.id)
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError(
                f"role must be one of: {', '.join(r.value for r in ASSIGNABLE_ROLES)}",
                "role", context,
            )
        await self.resolver.require_course(course_id)
        async with course_lock(course_id):
            flags = await self.resolver.role_flags(actor.id, course_id)
            if flags.is_teacher or flags.is_coord:
                raise ConflictError(
                    f"Caller already holds the {'teacher' if flags.is_teacher else 'coordinator'} "
                    "role in this course.",
                    context,
                )
            await bounded(
                self.store.apply_batch(EdgeBatch(
                    upserts=[identity_profile(actor)],
                    relates=[EdgeRow(
                        edge_type=ROLE_EDGES[role],
                        source=entity_key(EntityKind.USER, actor.id),
                        target=entity_key(EntityKind.COURSE, course_id),
                    )],
                )),
                self.store_timeout_seconds, "graph store", context,
            )
        logger.info(
            f"Role {role.value} assigned",
            extra={"course_id": course_id, "user_id": actor.id},
        )
        return flags_view(await self.resolver.role_flags(actor.id, course_id))

    # ─── Reads ──────────────────────────────────────────────────

    async def course_detail(self, course_id: str, actor: Identity) -> dict:
        """Course, flattened roster, cells, and the caller's role resolution."""
        course = await self.resolver.require_course(course_id)
        resolution = await self.resolver.resolve_role(actor.id, course_id)
        if not resolution.flags.any:
            raise ForbiddenError(
                "Forbidden: no role in this course.",
                ErrorContext(course_id=course_id, user_id=actor.id),
            )

        members = await role_members(self.store, course.key)
        users = await users_by_key(self.store, {k for keys in members.values() for k in keys})
        owners = [users[k] for k in members[Role.OWNER]]
        return {
            "course": course_view(course),
            "owner": owners[0] if owners else None,
            "teachers": [users[k] for k in members[Role.TEACHER]],
            "coordinators": [users[k] for k in members[Role.COORDINATOR]],
            "students": [users[k] for k in members[Role.STUDENT]],
            "cells": [c.to_dict() for c in await load_cells(self.store, course.key)],
            "role": resolution.to_dict(),
        }

    async def list_courses(self, actor: Identity, provider: RosterProvider) -> list[dict]:
        """Provider courses taught by the caller, annotated with local state."""
        context = ErrorContext(user_id=actor.id)
        try:
            remote = await bounded(
                provider.list_courses("me"),
                self.provider_timeout_seconds, "roster provider", context,
            )
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(f"Course list failed: {e}", exc_info=True, extra={"user_id": actor.id})
            raise UpstreamError(str(e), "roster provider", context=context) from e

        courses = [c for c in remote or [] if isinstance(c, dict) and c.get("id")]
        keys = [entity_key(EntityKind.COURSE, str(c["id"])) for c in courses]
        stored = {row.key for row in await self.store.get_entities(keys)}

        held: dict[str, set] = {}
        if keys:
            rows = await self.store.query(EdgePattern(
                edge_types=tuple(ROLE_EDGES.values()),
                source=entity_key(EntityKind.USER, actor.id),
                targets=tuple(keys),
            ))
            for row in rows:
                held.setdefault(row.target, set()).add(row.edge_type)

        return [
            {
                **course,
                "id": split_key(key)[1],
                "synced": key in stored,
                "role": flags_view(RoleFlags.from_edge_types(held.get(key, set()))),
            }
            for course, key in zip(courses, keys)
        ]
