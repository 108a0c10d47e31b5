"""Auth Routes — token exchange, logout, me, and cookie handling on 401.

Invariants verified:
    - POST /auth/token sets an HttpOnly session cookie and returns the user
    - Missing code -> 400
    - Refresh token mirrored to a token:<userId> entity (background task)
    - Expired token without refresh -> 401 with the cookie cleared
    - Expired token with refresh -> 200 and a rewritten cookie keeping created_at
"""

from datetime import datetime, timedelta, timezone

from rostergraph.config import get_settings
from rostergraph.core.domain_types import EntityKind, entity_key
from rostergraph.core.session_state import (
    Credentials, Identity, decode_session_cookie, encode_session_cookie, new_session,
)

COOKIE = get_settings().session_cookie_name


def _set_cookie_header(res) -> str:
    return next(
        (v for k, v in res.headers.multi_items() if k == "set-cookie" and v.startswith(COOKIE)),
        "",
    )


def _cookie_value(res) -> str:
    return _set_cookie_header(res).split(";", 1)[0].split("=", 1)[1]


async def test_token_exchange_sets_cookie(client, identity_provider, store):
    identity_provider.codes["code-1"] = Identity(id="u1", email="u1@school.org", name="U1")

    res = await client.post("/api/v1/auth/token", json={"code": "code-1"})

    assert res.status_code == 200
    body = res.json()
    assert body["user"]["id"] == "u1"
    assert body["session_created"]
    header = _set_cookie_header(res)
    assert "HttpOnly" in header
    assert "samesite=lax" in header.lower()
    assert "Max-Age=604800" in header

    token = await store.get_entity(entity_key(EntityKind.TOKEN, "u1"))
    assert token is not None
    assert token.fields["refresh_token"].startswith("refresh-u1")


async def test_token_without_code_is_400(client):
    res = await client.post("/api/v1/auth/token", json={})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_token_with_rejected_code_is_500(client):
    res = await client.post("/api/v1/auth/token", json={"code": "bogus"})
    assert res.status_code == 500
    assert res.json()["error"]["code"] == "UPSTREAM_ERROR"


async def test_me_without_cookie_is_401(client):
    res = await client.get("/api/v1/auth/me")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "AUTH_UNAUTHENTICATED"
    assert "Max-Age=0" in _set_cookie_header(res)


async def test_me_with_session(client, login):
    login("u1", name="Una")
    res = await client.get("/api/v1/auth/me")
    assert res.status_code == 200
    assert res.json()["user"] == {
        "id": "u1", "email": "u1@school.org", "name": "Una", "picture": None,
    }


async def test_logout_clears_cookie(client, login):
    login("u1")
    res = await client.post("/api/v1/auth/logout")
    assert res.status_code == 200
    assert _set_cookie_header(res)


async def test_expired_without_refresh_is_401_and_cookie_cleared(client, identity_provider):
    identity = Identity(id="u1")
    now = datetime.now(timezone.utc)
    client.cookies.set(COOKIE, encode_session_cookie(new_session(
        Credentials(access_token="stale", refresh_token=None, expires_at=now.timestamp() - 60),
        identity, now - timedelta(hours=2),
    )))

    res = await client.get("/api/v1/auth/me")

    assert res.status_code == 401
    assert res.json()["error"]["code"] == "AUTH_EXPIRED"
    assert _set_cookie_header(res)


async def test_expired_with_refresh_rotates_cookie(client, identity_provider):
    identity = Identity(id="u1", name="U1")
    identity_provider.tokens["live"] = identity
    identity_provider.refreshable["r-1"] = "u1"
    now = datetime.now(timezone.utc)
    created = (now - timedelta(days=1)).replace(microsecond=0)
    client.cookies.set(COOKIE, encode_session_cookie(new_session(
        Credentials(access_token="stale", refresh_token="r-1", expires_at=now.timestamp() - 60),
        identity, created,
    )))

    res = await client.get("/api/v1/auth/me")

    assert res.status_code == 200
    assert res.json()["user"]["id"] == "u1"
    rotated = decode_session_cookie(_cookie_value(res))
    assert rotated.created_at == created
    assert rotated.credentials.access_token != "stale"
    assert rotated.credentials.refresh_token == "r-1"


async def test_malformed_cookie_is_401_invalid(client):
    client.cookies.set(COOKIE, "garbage!!")
    res = await client.get("/api/v1/auth/me")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "AUTH_INVALID"
