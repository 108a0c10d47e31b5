"""Coursework Sync — mirrors course work items and their submissions into the graph.

Invariants:
    - Same preconditions as roster sync: course exists (404), actor is owner or teacher (403)
    - Work list and every work's submissions are fetched before the first write (all-or-fail)
    - Each work is one batch: work upsert, is_from work -> course, stale is_assigned deletes,
      attributed is_assigned upserts
    - Submissions for users with no stored profile are skipped and counted, never create users
    - A failed work batch leaves other works' committed batches in place; the summary lists it

Design Decisions:
    - Submission fan-out bounded by settings.provider_concurrency (semaphore + gather)
    - Shares the course lock with roster sync: both write edges into the same course subgraph
"""

import logging
from dataclasses import dataclass, field

from rostergraph.core.domain_types import EdgeType, EntityKind, entity_key
from rostergraph.core.errors import ErrorContext, UpstreamError
from rostergraph.core.graph_types import EdgeBatch, EdgePattern, EdgeRow, EntityRow
from rostergraph.core.reconcile import SubmissionRecord, normalize_submissions, plan_edges
from rostergraph.core.repository_protocols import GraphStore, RosterProvider
from rostergraph.core.session_state import Identity
from rostergraph.services.authorization import AuthorizationResolver
from rostergraph.services.call_bounds import bounded, bounded_gather
from rostergraph.services.keyed_locks import course_lock

logger = logging.getLogger(__name__)

_WORK_FIELDS = ("title", "description", "work_type", "due_date", "due_time", "max_points", "link")


@dataclass
class CourseworkSummary:
    course_id: str
    works_synced: int = 0
    works_skipped: int = 0
    submissions_written: int = 0
    submissions_removed: int = 0
    submissions_skipped: int = 0
    failed_works: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_works

    def to_dict(self) -> dict:
        return {
            "course_id": self.course_id,
            "ok": self.ok,
            "works_synced": self.works_synced,
            "works_skipped": self.works_skipped,
            "submissions_written": self.submissions_written,
            "submissions_removed": self.submissions_removed,
            "submissions_skipped": self.submissions_skipped,
            "failed_works": list(self.failed_works),
        }


class CourseworkSyncEngine:
    def __init__(
        self,
        store: GraphStore,
        provider: RosterProvider,
        provider_timeout_seconds: float = 20.0,
        store_timeout_seconds: float = 15.0,
        concurrency: int = 5,
    ):
        self.store = store
        self.provider = provider
        self.resolver = AuthorizationResolver(store)
        self.provider_timeout_seconds = provider_timeout_seconds
        self.store_timeout_seconds = store_timeout_seconds
        self.concurrency = concurrency

    async def sync(self, course_id: str, actor: Identity) -> CourseworkSummary:
        await self.resolver.require_flags(
            actor.id, course_id, "owner or teacher", lambda f: f.can_sync,
        )
        context = ErrorContext(course_id=course_id, user_id=actor.id)
        summary = CourseworkSummary(course_id=course_id)

        async with course_lock(course_id):
            works, summary.works_skipped, submissions = await self._fetch(course_id, context)
            known_users = await self._known_users(submissions)
            for work in works:
                await self._apply_work(
                    course_id, work, submissions[work["id"]], known_users, summary,
                )

        if not summary.ok:
            raise UpstreamError(
                f"coursework not applied for {len(summary.failed_works)} works",
                "coursework sync", summary=summary.to_dict(), context=context,
            )
        logger.info(
            f"Coursework sync complete: {summary.works_synced} works",
            extra={"course_id": course_id, "user_id": actor.id,
                   "skipped": summary.submissions_skipped},
        )
        return summary

    async def _fetch(
        self, course_id: str, context: ErrorContext,
    ) -> tuple[list[dict], int, dict[str, list[dict]]]:
        """Valid work records, count of records without id, submissions by work id."""
        try:
            raw_works = await bounded(
                self.provider.list_course_work(course_id),
                self.provider_timeout_seconds, "roster provider", context,
            )
            valid = [w for w in raw_works or [] if isinstance(w, dict) and w.get("id")]
            invalid = [w for w in raw_works or [] if w not in valid]

            def fetcher(work_id: str):
                return lambda: bounded(
                    self.provider.list_submissions(course_id, work_id),
                    self.provider_timeout_seconds, "roster provider", context,
                )

            results = await bounded_gather(
                [fetcher(str(w["id"])) for w in valid], self.concurrency,
            )
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(f"Coursework fetch failed: {e}", exc_info=True, extra={"course_id": course_id})
            raise UpstreamError(str(e), "roster provider", context=context) from e

        if invalid:
            logger.warning(
                f"Skipped {len(invalid)} course work records without id",
                extra={"course_id": course_id, "skipped": len(invalid)},
            )
        submissions = {w["id"]: r or [] for w, r in zip(valid, results)}
        return valid, len(invalid), submissions

    async def _known_users(self, submissions: dict[str, list[dict]]) -> set[str]:
        keys = {
            entity_key(EntityKind.USER, str(s["user_id"]))
            for records in submissions.values()
            for s in records
            if isinstance(s, dict) and s.get("user_id")
        }
        rows = await bounded(
            self.store.get_entities(sorted(keys)), self.store_timeout_seconds, "graph store",
        )
        return {row.key for row in rows}

    async def _apply_work(
        self,
        course_id: str,
        work: dict,
        raw_submissions: list[dict],
        known_users: set[str],
        summary: CourseworkSummary,
    ) -> None:
        course_key = entity_key(EntityKind.COURSE, course_id)
        work_id = str(work["id"])
        work_key = entity_key(EntityKind.WORK, work_id)

        records, malformed = normalize_submissions(raw_submissions)
        kept: list[SubmissionRecord] = [r for r in records if r.user_key in known_users]
        summary.submissions_skipped += malformed + len(records) - len(kept)

        try:
            current = await bounded(
                self.store.query(EdgePattern.of(EdgeType.IS_ASSIGNED, target=work_key)),
                self.store_timeout_seconds, "graph store",
            )
            plan = plan_edges({row.source for row in current}, {r.user_key for r in kept})
            batch = EdgeBatch(
                upserts=[EntityRow(
                    key=work_key, kind=EntityKind.WORK, external_id=work_id,
                    fields={name: work.get(name) for name in _WORK_FIELDS},
                )],
                deletes=[EdgePattern.of(
                    EdgeType.IS_ASSIGNED, target=work_key,
                    sources=tuple(sorted(plan.to_delete)),
                )] if plan.to_delete else [],
                relates=[
                    EdgeRow(edge_type=EdgeType.IS_FROM, source=work_key, target=course_key),
                    *(
                        EdgeRow(
                            edge_type=EdgeType.IS_ASSIGNED, source=r.user_key,
                            target=work_key, attrs=r.edge_attrs(),
                        )
                        for r in kept
                    ),
                ],
            )
            await bounded(
                self.store.apply_batch(batch), self.store_timeout_seconds, "graph store",
            )
        except UpstreamError as e:
            logger.error(
                f"Work batch failed for {work_id}: {e.message}",
                extra={"course_id": course_id, "error_code": e.code},
            )
            summary.failed_works.append(work_id)
            return

        summary.works_synced += 1
        summary.submissions_written += len(kept)
        summary.submissions_removed += len(plan.to_delete)
