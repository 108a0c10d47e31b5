"""Course Routes — listing, start, detail, roster/coursework sync, roles, cells, stats.

Invariants:
    - Every route requires a session (401 with cookie cleared otherwise)
    - Course existence (404) is checked before the role check (403), both before provider calls
    - Sync routes return the summary on success; a partial failure is a 500 whose
      error envelope carries the same summary

Design Decisions:
    - Handlers only wire dependencies to services; rules live in services/ and core/
    - Providers injected per request (get_roster_provider) so tests swap in fakes
"""

import logging

from fastapi import APIRouter, Depends

from rostergraph.api.dependencies import get_roster_provider, get_store, require_session
from rostergraph.config import Settings, get_settings
from rostergraph.core.domain_types import Role
from rostergraph.core.repository_protocols import GraphStore, RosterProvider
from rostergraph.schemas.course import (
    CellRequest, CellResponse, RoleRequest, StartCourseRequest,
)
from rostergraph.services.cell_service import CellService
from rostergraph.services.course_service import CourseService
from rostergraph.services.coursework_sync import CourseworkSyncEngine
from rostergraph.services.roster_sync import RosterSyncEngine
from rostergraph.services.session_manager import AuthOutcome
from rostergraph.services.stats_service import StatsService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/courses", tags=["courses"])


def _course_service(store: GraphStore, settings: Settings) -> CourseService:
    return CourseService(
        store,
        provider_timeout_seconds=settings.provider_timeout_seconds,
        store_timeout_seconds=settings.store_timeout_seconds,
    )


@router.get("")
async def list_courses(
    session: AuthOutcome = Depends(require_session),
    provider: RosterProvider = Depends(get_roster_provider),
    store: GraphStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Caller's provider courses with local sync state and role flags."""
    courses = await _course_service(store, settings).list_courses(session.identity, provider)
    return {"courses": courses}


@router.post("/start")
async def start_course(
    body: StartCourseRequest,
    session: AuthOutcome = Depends(require_session),
    provider: RosterProvider = Depends(get_roster_provider),
    store: GraphStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    course = await _course_service(store, settings).start_course(
        body.course_id, session.identity, provider,
    )
    return {"course": course}


@router.get("/{course_id}")
async def course_detail(
    course_id: str,
    session: AuthOutcome = Depends(require_session),
    store: GraphStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    return await _course_service(store, settings).course_detail(course_id, session.identity)


@router.post("/{course_id}/sync")
async def sync_roster(
    course_id: str,
    session: AuthOutcome = Depends(require_session),
    provider: RosterProvider = Depends(get_roster_provider),
    store: GraphStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Reconcile teacher and student edges with the provider roster."""
    engine = RosterSyncEngine(
        store, provider,
        provider_timeout_seconds=settings.provider_timeout_seconds,
        store_timeout_seconds=settings.store_timeout_seconds,
    )
    summary = await engine.sync(course_id, session.identity)
    return summary.to_dict()


@router.post("/{course_id}/coursework/sync")
async def sync_coursework(
    course_id: str,
    session: AuthOutcome = Depends(require_session),
    provider: RosterProvider = Depends(get_roster_provider),
    store: GraphStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    engine = CourseworkSyncEngine(
        store, provider,
        provider_timeout_seconds=settings.provider_timeout_seconds,
        store_timeout_seconds=settings.store_timeout_seconds,
        concurrency=settings.provider_concurrency,
    )
    summary = await engine.sync(course_id, session.identity)
    return summary.to_dict()


@router.post("/{course_id}/role")
async def assign_role(
    course_id: str,
    body: RoleRequest,
    session: AuthOutcome = Depends(require_session),
    store: GraphStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    role = await _course_service(store, settings).assign_role(
        course_id, session.identity, Role(body.role),
    )
    return {"role": role}


@router.post("/{course_id}/cell", response_model=CellResponse)
async def replace_cell(
    course_id: str,
    body: CellRequest,
    session: AuthOutcome = Depends(require_session),
    store: GraphStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Replace the caller's cell in this course."""
    service = CellService(store, store_timeout_seconds=settings.store_timeout_seconds)
    cell_id = await service.replace_cell(
        course_id, session.identity, body.cell_name, body.students,
    )
    return CellResponse(cell_id=cell_id)


@router.get("/{course_id}/stats")
async def course_stats(
    course_id: str,
    session: AuthOutcome = Depends(require_session),
    store: GraphStore = Depends(get_store),
):
    return await StatsService(store).course_stats(course_id, session.identity)
