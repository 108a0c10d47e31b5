"""Session Manager — state machine over cookie, probe and refresh.

Invariants verified:
    - No cookie -> UNAUTHENTICATED; garbage -> INVALID
    - Valid token -> identity, no rotation
    - Expired/rejected token + refresh token -> rotated cookie, created_at preserved
    - Expired token without refresh token, or failed refresh -> EXPIRED
    - Probe timeout fails closed (UNAUTHENTICATED); outer TTL -> EXPIRED without provider calls
"""

from datetime import datetime, timedelta, timezone

import pytest

from rostergraph.core.domain_types import AuthFailure
from rostergraph.core.errors import AuthError
from rostergraph.core.session_state import (
    Credentials, Identity, decode_session_cookie, encode_session_cookie, new_session,
)
from rostergraph.services.session_manager import SessionManager

from tests.services.fakes import FakeIdentityProvider

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ALICE = Identity(id="alice", email="alice@school.org", name="Alice")


@pytest.fixture
def idp():
    provider = FakeIdentityProvider()
    provider.tokens["tok-live"] = ALICE
    provider.refreshable["ref-1"] = "alice"
    return provider


def _manager(idp, now=NOW, timeout=1.0):
    return SessionManager(idp, ttl=timedelta(days=7), timeout_seconds=timeout, clock=lambda: now)


def _cookie(access="tok-live", refresh="ref-1", expires_in=3600.0, created=NOW):
    return encode_session_cookie(new_session(
        Credentials(access_token=access, refresh_token=refresh,
                    expires_at=created.timestamp() + expires_in),
        ALICE, created,
    ))


async def _reason(manager, cookie) -> AuthFailure:
    with pytest.raises(AuthError) as excinfo:
        await manager.authenticate(cookie)
    return excinfo.value.reason


async def test_no_cookie_is_unauthenticated(idp):
    assert await _reason(_manager(idp), None) is AuthFailure.UNAUTHENTICATED
    assert await _reason(_manager(idp), "") is AuthFailure.UNAUTHENTICATED


async def test_garbage_cookie_is_invalid(idp):
    assert await _reason(_manager(idp), "not-a-session") is AuthFailure.INVALID
    assert idp.calls == []


async def test_valid_token_attaches_identity_without_rotation(idp):
    outcome = await _manager(idp).authenticate(_cookie())
    assert outcome.identity == ALICE
    assert outcome.rotated_cookie is None
    assert [c[0] for c in idp.calls] == ["get_user_info"]


async def test_expired_token_with_refresh_rotates_and_keeps_created_at(idp):
    created = NOW - timedelta(days=2)
    cookie = _cookie(access="tok-stale", expires_in=-60, created=created)

    outcome = await _manager(idp).authenticate(cookie)

    assert outcome.rotated_cookie is not None
    rotated = decode_session_cookie(outcome.rotated_cookie)
    assert rotated.created_at == created
    assert rotated.credentials.access_token != "tok-stale"
    assert rotated.credentials.refresh_token == "ref-1"
    assert rotated.identity == ALICE
    assert outcome.max_age == int(timedelta(days=5).total_seconds())


async def test_rejected_token_with_refresh_rotates(idp):
    outcome = await _manager(idp).authenticate(_cookie(access="tok-revoked"))
    assert outcome.rotated_cookie is not None
    assert outcome.identity.id == "alice"


async def test_expired_token_without_refresh_is_expired(idp):
    cookie = _cookie(access="tok-stale", refresh=None, expires_in=-60)
    assert await _reason(_manager(idp), cookie) is AuthFailure.EXPIRED


async def test_failed_refresh_is_expired(idp):
    cookie = _cookie(access="tok-stale", refresh="ref-unknown", expires_in=-60)
    assert await _reason(_manager(idp), cookie) is AuthFailure.EXPIRED


async def test_outer_ttl_expires_without_provider_calls(idp):
    cookie = _cookie(created=NOW - timedelta(days=8))
    assert await _reason(_manager(idp), cookie) is AuthFailure.EXPIRED
    assert idp.calls == []


async def test_userinfo_timeout_fails_closed(idp):
    idp.delay_on["get_user_info"] = 1.0
    manager = _manager(idp, timeout=0.05)
    assert await _reason(manager, _cookie()) is AuthFailure.UNAUTHENTICATED


async def test_identity_mismatch_is_invalid(idp):
    idp.tokens["tok-live"] = Identity(id="mallory")
    assert await _reason(_manager(idp), _cookie()) is AuthFailure.INVALID


async def test_create_session_from_code(idp):
    idp.codes["code-1"] = ALICE
    outcome = await _manager(idp).create_session("code-1")
    payload = decode_session_cookie(outcome.rotated_cookie)
    assert payload.identity == ALICE
    assert payload.created_at == NOW
    assert outcome.max_age == 7 * 24 * 3600
