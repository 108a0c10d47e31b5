"""Roster Sync Engine — reconciles is_teacher / is_student edges with the provider roster.

Invariants:
    - Preconditions before any provider call: course exists (404), actor is owner or teacher (403)
    - All roster lists are fetched (pagination complete) before the first write;
      a fetch failure raises UpstreamError with zero writes
    - Each roster class is one batch: profile upserts, stale-edge deletes, new-edge creates
    - An empty roster is a real target: every edge of that class is deleted
    - Only the edge type of the class being reconciled is touched (owner/coord edges never are)
    - A failed class batch does not undo an earlier committed one; the summary says which committed
    - Malformed roster records are skipped, logged, and counted

Design Decisions:
    - course_lock (services/keyed_locks.py) serializes syncs of one course inside this process;
      writes stay idempotent (upsert by key, set-difference edges) across processes
    - Classes reconciled sequentially on the request's session: one transaction at a time per session
"""

import logging
from dataclasses import dataclass, field, asdict

from rostergraph.core.domain_types import (
    EntityKind, RosterClass, SyncStatus, entity_key,
)
from rostergraph.core.errors import ErrorContext, UpstreamError
from rostergraph.core.graph_types import EdgeBatch, EdgePattern, EdgeRow, EntityRow
from rostergraph.core.reconcile import NormalizedRoster, normalize_roster, plan_edges
from rostergraph.core.repository_protocols import GraphStore, RosterProvider
from rostergraph.core.session_state import Identity
from rostergraph.services.authorization import AuthorizationResolver
from rostergraph.services.call_bounds import bounded, gather_all_or_fail
from rostergraph.services.keyed_locks import course_lock

logger = logging.getLogger(__name__)


@dataclass
class ClassResult:
    roster_class: RosterClass
    status: SyncStatus
    fetched: int = 0
    skipped: int = 0
    profiles_upserted: int = 0
    created: int = 0
    deleted: int = 0
    unchanged: int = 0
    error: str | None = None


@dataclass
class SyncSummary:
    course_id: str
    classes: list[ClassResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.status is SyncStatus.COMMITTED for c in self.classes)

    def result_for(self, roster_class: RosterClass) -> ClassResult | None:
        return next((c for c in self.classes if c.roster_class is roster_class), None)

    def to_dict(self) -> dict:
        return {
            "course_id": self.course_id,
            "ok": self.ok,
            "classes": [
                {**asdict(c), "roster_class": c.roster_class.value, "status": c.status.value}
                for c in self.classes
            ],
        }


class RosterSyncEngine:
    """Diff-and-apply reconciliation of a course's teacher and student edges."""

    def __init__(
        self,
        store: GraphStore,
        provider: RosterProvider,
        provider_timeout_seconds: float = 20.0,
        store_timeout_seconds: float = 15.0,
        classes: tuple[RosterClass, ...] = (RosterClass.TEACHER, RosterClass.STUDENT),
    ):
        self.store = store
        self.provider = provider
        self.resolver = AuthorizationResolver(store)
        self.provider_timeout_seconds = provider_timeout_seconds
        self.store_timeout_seconds = store_timeout_seconds
        self.classes = classes

    async def sync(self, course_id: str, actor: Identity) -> SyncSummary:
        """Reconcile every roster class. Raises UpstreamError (with summary) if any class failed."""
        await self.resolver.require_flags(
            actor.id, course_id, "owner or teacher", lambda f: f.can_sync,
        )
        context = ErrorContext(course_id=course_id, user_id=actor.id)

        async with course_lock(course_id):
            rosters = await self._fetch_rosters(course_id, context)
            summary = SyncSummary(course_id=course_id)
            for roster_class in self.classes:
                summary.classes.append(
                    await self._reconcile(course_id, roster_class, rosters[roster_class]),
                )

        if not summary.ok:
            failed = [c.roster_class.value for c in summary.classes if c.status is SyncStatus.FAILED]
            raise UpstreamError(
                f"roster classes not applied: {', '.join(failed)}", "roster sync",
                summary=summary.to_dict(), context=context,
            )
        logger.info(
            "Roster sync complete",
            extra={"course_id": course_id, "user_id": actor.id},
        )
        return summary

    async def _fetch_rosters(
        self, course_id: str, context: ErrorContext,
    ) -> dict[RosterClass, NormalizedRoster]:
        fetchers = {
            RosterClass.TEACHER: self.provider.list_teachers,
            RosterClass.STUDENT: self.provider.list_students,
        }
        try:
            raw = await gather_all_or_fail(*(
                bounded(fetchers[c](course_id), self.provider_timeout_seconds, "roster provider", context)
                for c in self.classes
            ))
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(f"Roster fetch failed: {e}", exc_info=True, extra={"course_id": course_id})
            raise UpstreamError(str(e), "roster provider", context=context) from e

        rosters = {}
        for roster_class, records in zip(self.classes, raw):
            roster = normalize_roster(records or [])
            if roster.skipped:
                logger.warning(
                    f"Skipped {roster.skipped} malformed {roster_class.value} records",
                    extra={"course_id": course_id, "roster_class": roster_class.value,
                           "skipped": roster.skipped},
                )
            rosters[roster_class] = roster
        return rosters

    async def _reconcile(
        self, course_id: str, roster_class: RosterClass, roster: NormalizedRoster,
    ) -> ClassResult:
        course_key = entity_key(EntityKind.COURSE, course_id)
        edge_type = roster_class.edge_type
        result = ClassResult(
            roster_class=roster_class, status=SyncStatus.FAILED,
            fetched=len(roster.members) + roster.skipped, skipped=roster.skipped,
        )
        try:
            current = await bounded(
                self.store.query(EdgePattern.of(edge_type, target=course_key)),
                self.store_timeout_seconds, "graph store",
            )
            plan = plan_edges({row.source for row in current}, roster.keys)
            batch = EdgeBatch(
                upserts=[
                    EntityRow(
                        key=m.key, kind=EntityKind.USER,
                        external_id=m.external_id, fields=m.profile_fields(),
                    )
                    for m in roster.members
                ],
                deletes=[
                    EdgePattern.of(edge_type, target=course_key, sources=tuple(sorted(plan.to_delete))),
                ] if plan.to_delete else [],
                relates=[
                    EdgeRow(edge_type=edge_type, source=key, target=course_key)
                    for key in sorted(plan.to_create)
                ],
            )
            await bounded(
                self.store.apply_batch(batch), self.store_timeout_seconds, "graph store",
            )
        except UpstreamError as e:
            logger.error(
                f"Roster class batch failed: {e.message}",
                extra={"course_id": course_id, "roster_class": roster_class.value,
                       "error_code": e.code},
            )
            result.error = e.code
            return result

        result.status = SyncStatus.COMMITTED
        result.profiles_upserted = len(roster.members)
        result.created = len(plan.to_create)
        result.deleted = len(plan.to_delete)
        result.unchanged = len(plan.unchanged)
        logger.info(
            f"Reconciled {roster_class.value} edges",
            extra={"course_id": course_id, "roster_class": roster_class.value,
                   "created": result.created, "deleted": result.deleted},
        )
        return result
