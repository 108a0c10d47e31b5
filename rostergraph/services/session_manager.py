"""Session Manager — validates, refreshes and rotates the session cookie.

Invariants:
    - No cookie -> AuthError(UNAUTHENTICATED); undecodable cookie -> AuthError(INVALID)
    - Past the outer TTL (measured from created_at) -> AuthError(EXPIRED), no provider call
    - Access token accepted by the userinfo probe -> identity attached, cookie untouched
    - Access token expired or rejected:
        refresh token present and refresh succeeds -> rotated cookie, created_at preserved
        refresh token absent or refresh fails     -> AuthError(EXPIRED)
    - Probe timeout or probe outage (not a rejection) fails closed: AuthError(UNAUTHENTICATED)
    - Probe identity differing from the cookie's identity -> AuthError(INVALID)
    - Never touches the database

Design Decisions:
    - The manager returns an AuthOutcome; the HTTP layer owns Set-Cookie / delete_cookie
      (every AuthError is mapped to a 401 that clears the cookie in api/error_handlers.py)
    - Clock injected as a callable so the TTL rules are testable without sleeping
    - Every provider call bounded by asyncio.wait_for (services/call_bounds.py)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from rostergraph.core.domain_types import AuthFailure
from rostergraph.core.errors import (
    AuthError, ErrorContext, UpstreamError, UpstreamTimeoutError,
)
from rostergraph.core.repository_protocols import IdentityProvider
from rostergraph.core.session_state import (
    Credentials, Identity, MalformedSessionError, SessionPayload,
    decode_session_cookie, encode_session_cookie, new_session,
)
from rostergraph.services.call_bounds import bounded

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuthOutcome:
    """Result of a successful authentication.

    rotated_cookie is set only when credentials changed and the caller
    must write a new Set-Cookie; max_age is then the remaining outer TTL.
    """
    identity: Identity
    credentials: Credentials
    created_at: datetime
    rotated_cookie: str | None = None
    max_age: int | None = None


class SessionManager:
    """Session lifecycle over an IdentityProvider."""

    def __init__(
        self,
        identity_provider: IdentityProvider,
        ttl: timedelta = timedelta(days=7),
        timeout_seconds: float = 20.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.identity_provider = identity_provider
        self.ttl = ttl
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    # ─── Login ──────────────────────────────────────────────────

    async def create_session(self, code: str) -> AuthOutcome:
        """Exchange an authorization code and build a fresh session cookie."""
        credentials = await bounded(
            self.identity_provider.exchange_code(code),
            self.timeout_seconds, "identity provider",
        )
        identity = await bounded(
            self.identity_provider.get_user_info(credentials.access_token),
            self.timeout_seconds, "identity provider",
        )
        payload = new_session(credentials, identity, self.clock())
        logger.info("Session created", extra={"user_id": identity.id})
        return AuthOutcome(
            identity=identity,
            credentials=credentials,
            created_at=payload.created_at,
            rotated_cookie=encode_session_cookie(payload),
            max_age=int(self.ttl.total_seconds()),
        )

    # ─── Authenticate ───────────────────────────────────────────

    async def authenticate(self, cookie: str | None) -> AuthOutcome:
        """Validate a cookie value. Raises AuthError with the failure reason."""
        if not cookie:
            raise AuthError(AuthFailure.UNAUTHENTICATED)
        try:
            payload = decode_session_cookie(cookie)
        except MalformedSessionError as e:
            logger.warning(f"Malformed session cookie: {e}")
            raise AuthError(AuthFailure.INVALID)

        now = self.clock()
        context = ErrorContext(user_id=payload.identity.id)
        if payload.is_beyond_ttl(now, self.ttl):
            logger.info("Session past outer TTL", extra={"user_id": payload.identity.id})
            raise AuthError(AuthFailure.EXPIRED, context)

        if not payload.credentials.is_expired(now):
            identity = await self._probe(payload, context)
            if identity is not None:
                return AuthOutcome(
                    identity=identity,
                    credentials=payload.credentials,
                    created_at=payload.created_at,
                )
        return await self._refresh(payload, now, context)

    async def _probe(self, payload: SessionPayload, context: ErrorContext) -> Identity | None:
        """Userinfo probe. None means the access token was rejected."""
        try:
            identity = await bounded(
                self.identity_provider.get_user_info(payload.credentials.access_token),
                self.timeout_seconds, "identity provider",
            )
        except UpstreamTimeoutError:
            logger.warning("Session probe timed out", extra={"user_id": context.user_id})
            raise AuthError(AuthFailure.UNAUTHENTICATED, context)
        except UpstreamError as e:
            if e.rejected:
                return None
            logger.warning(
                f"Session probe failed: {e.message}",
                extra={"user_id": context.user_id, "status_code": e.status_code},
            )
            raise AuthError(AuthFailure.UNAUTHENTICATED, context)
        if identity.id != payload.identity.id:
            logger.warning("Session identity mismatch", extra={"user_id": context.user_id})
            raise AuthError(AuthFailure.INVALID, context)
        return identity

    async def _refresh(
        self, payload: SessionPayload, now: datetime, context: ErrorContext,
    ) -> AuthOutcome:
        refresh_token = payload.credentials.refresh_token
        if not refresh_token:
            raise AuthError(AuthFailure.EXPIRED, context)
        try:
            fresh = await bounded(
                self.identity_provider.refresh_token(refresh_token),
                self.timeout_seconds, "identity provider",
            )
        except UpstreamError as e:
            logger.warning(
                f"Token refresh failed: {e.message}",
                extra={"user_id": context.user_id, "error_code": e.code},
            )
            raise AuthError(AuthFailure.EXPIRED, context)

        rotated = payload.rotate(fresh)
        identity = await self._probe(rotated, context)
        if identity is None:
            raise AuthError(AuthFailure.EXPIRED, context)

        logger.info("Session credentials rotated", extra={"user_id": identity.id})
        return AuthOutcome(
            identity=identity,
            credentials=rotated.credentials,
            created_at=rotated.created_at,
            rotated_cookie=encode_session_cookie(rotated),
            max_age=rotated.remaining_ttl(now, self.ttl),
        )
