"""API Dependencies — per-request wiring of store, providers and the session gate.

Invariants:
    - Providers are built per request from Settings and the caller's credentials
      (no module-level OAuth client, no shared credentials between requests)
    - require_session runs before any handler IO; a rotated session is written back
      on the same response, with max_age = remaining outer TTL
    - Session cookie: HttpOnly, SameSite=Lax, Secure from settings, path "/"

Design Decisions:
    - One shared httpx.AsyncClient per process (app.state.http_client) for connection reuse;
      credentials travel in per-call headers, never on the client
    - Tests override get_identity_provider / get_roster_provider with fakes
"""

from datetime import timedelta

import httpx
from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from rostergraph.config import Settings, get_settings
from rostergraph.infrastructure.database import get_db
from rostergraph.infrastructure.google_client import (
    GoogleClassroomProvider, GoogleIdentityProvider,
)
from rostergraph.infrastructure.graph_store import SqlGraphStore
from rostergraph.services.session_manager import AuthOutcome, SessionManager


def set_session_cookie(response: Response, value: str, max_age: int, settings: Settings) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        value,
        max_age=max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


async def get_store(db: AsyncSession = Depends(get_db)) -> SqlGraphStore:
    return SqlGraphStore(db)


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Process-wide client created in the lifespan."""
    return request.app.state.http_client


def get_identity_provider(
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    return GoogleIdentityProvider(settings, client)


def get_session_manager(
    identity_provider=Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
) -> SessionManager:
    return SessionManager(
        identity_provider,
        ttl=timedelta(days=settings.session_ttl_days),
        timeout_seconds=settings.provider_timeout_seconds,
    )


async def require_session(
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
) -> AuthOutcome:
    """Authenticate the request cookie; raises AuthError (401, cookie cleared)."""
    outcome = await manager.authenticate(request.cookies.get(settings.session_cookie_name))
    if outcome.rotated_cookie:
        set_session_cookie(response, outcome.rotated_cookie, outcome.max_age, settings)
    return outcome


def get_roster_provider(
    session: AuthOutcome = Depends(require_session),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    return GoogleClassroomProvider(settings, session.credentials.access_token, client)
