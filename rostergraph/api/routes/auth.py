"""Auth Routes — login by authorization code, logout, and current user.

Invariants:
    - POST /token sets a fresh session cookie (max_age = full outer TTL)
    - POST /logout always clears the cookie, with or without a valid session
    - GET /me answers from the authenticated identity only (no store access)
    - A refresh token, when issued, is mirrored to a token:<userId> entity in the background

Design Decisions:
    - Token mirror is fire-and-forget with its own DB session (request session already closed);
      it is a recovery side channel, never read on the authentication path
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, Response

from rostergraph.api.dependencies import (
    clear_session_cookie, get_session_manager, require_session, set_session_cookie,
)
from rostergraph.config import Settings, get_settings
from rostergraph.core.domain_types import EntityKind
from rostergraph.core.errors import RosterGraphError
from rostergraph.infrastructure.graph_store import SqlGraphStore
from rostergraph.schemas.auth import MeResponse, TokenRequest, TokenResponse, UserOut
from rostergraph.services.session_manager import AuthOutcome, SessionManager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


async def _persist_refresh_token(user_id: str, refresh_token: str) -> None:
    """Background task: mirror the refresh token into the graph store."""
    from rostergraph.infrastructure.database import db_manager

    if not db_manager:
        logger.error("Cannot persist refresh token: database not initialized",
                     extra={"user_id": user_id})
        return

    try:
        async with db_manager.session() as db:
            await SqlGraphStore(db).upsert_entity(EntityKind.TOKEN, user_id, {
                "refresh_token": refresh_token,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
    except RosterGraphError as e:
        logger.warning(
            f"Refresh token mirror failed: {e.message}",
            extra={"user_id": user_id, "error_code": e.code},
        )
        return
    logger.info("Refresh token mirrored", extra={"user_id": user_id})


@router.post("/token", response_model=TokenResponse)
async def exchange_token(
    body: TokenRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
):
    """Exchange an authorization code for a session cookie."""
    outcome = await manager.create_session(body.code)
    set_session_cookie(response, outcome.rotated_cookie, outcome.max_age, settings)
    if outcome.credentials.refresh_token:
        background_tasks.add_task(
            _persist_refresh_token, outcome.identity.id, outcome.credentials.refresh_token,
        )
    return TokenResponse(
        user=UserOut(**asdict(outcome.identity)),
        session_created=outcome.created_at.isoformat(),
    )


@router.post("/logout")
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    clear_session_cookie(response, settings)
    return {"status": "logged_out"}


@router.get("/me", response_model=MeResponse)
async def me(session: AuthOutcome = Depends(require_session)):
    return MeResponse(user=UserOut(**asdict(session.identity)))
