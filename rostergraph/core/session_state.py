"""Session State — pure model of the session cookie payload and its lifecycle rules.

Invariants:
    - A payload always has credentials.access_token, identity.id and created_at
    - rotate() replaces credentials only; identity and created_at are carried over unchanged
    - A refresh response without a refresh token keeps the previous refresh token
    - The outer TTL is measured from created_at, never from the last rotation

Design Decisions:
    - Cookie value is base64url(JSON): the JSON payload survives cookie quoting rules unchanged
    - Decoding failures raise MalformedSessionError (pure); the shell maps it to AuthError
    - Clock passed in explicitly so every rule is deterministic under test
"""

import base64
import binascii
import json
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timedelta, timezone

# Access tokens within this margin of expiry are treated as expired
EXPIRY_SKEW = timedelta(seconds=30)


class MalformedSessionError(ValueError):
    """Cookie payload could not be decoded into a SessionPayload."""


@dataclass(frozen=True)
class Identity:
    """Identity snapshot returned by the identity provider."""
    id: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Identity":
        if not isinstance(data, dict) or not data.get("id"):
            raise MalformedSessionError("identity.id missing")
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            name=data.get("name"),
            picture=data.get("picture"),
        )


@dataclass(frozen=True)
class Credentials:
    """OAuth credential bundle. expires_at is a UTC epoch timestamp in seconds."""
    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None
    token_type: str = "Bearer"
    scope: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Credentials":
        if not isinstance(data, dict) or not data.get("access_token"):
            raise MalformedSessionError("credentials.access_token missing")
        expires_at = data.get("expires_at")
        if expires_at is not None and not isinstance(expires_at, (int, float)):
            raise MalformedSessionError("credentials.expires_at must be numeric")
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token") or None,
            expires_at=float(expires_at) if expires_at is not None else None,
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )

    def is_expired(self, now: datetime) -> bool:
        """True only when expiry is known and has passed (with skew)."""
        if self.expires_at is None:
            return False
        expiry = datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
        return now + EXPIRY_SKEW >= expiry


@dataclass(frozen=True)
class SessionPayload:
    """Everything the session cookie carries."""
    credentials: Credentials
    identity: Identity
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "credentials": asdict(self.credentials),
            "identity": asdict(self.identity),
            "created_at": self.created_at.isoformat(),
        }

    def is_beyond_ttl(self, now: datetime, ttl: timedelta) -> bool:
        return now >= self.created_at + ttl

    def remaining_ttl(self, now: datetime, ttl: timedelta) -> int:
        """Seconds left before the outer TTL ends, never negative."""
        remaining = (self.created_at + ttl - now).total_seconds()
        return max(int(remaining), 0)

    def rotate(self, fresh: Credentials) -> "SessionPayload":
        """Swap in refreshed credentials, keeping identity and created_at."""
        refresh_token = fresh.refresh_token or self.credentials.refresh_token
        return replace(
            self, credentials=replace(fresh, refresh_token=refresh_token),
        )


def new_session(
    credentials: Credentials, identity: Identity, now: datetime,
) -> SessionPayload:
    return SessionPayload(credentials=credentials, identity=identity, created_at=now)


def encode_session_cookie(payload: SessionPayload) -> str:
    raw = json.dumps(payload.to_dict(), separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_session_cookie(value: str) -> SessionPayload:
    """Parse a cookie value. Raises MalformedSessionError on any defect."""
    try:
        padded = value + "=" * (-len(value) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise MalformedSessionError(f"undecodable session cookie: {e}") from e
    if not isinstance(data, dict):
        raise MalformedSessionError("session payload is not an object")

    credentials = Credentials.from_dict(data.get("credentials"))
    identity = Identity.from_dict(data.get("identity"))
    try:
        created_at = datetime.fromisoformat(data["created_at"])
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedSessionError("created_at missing or unparseable") from e
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return SessionPayload(
        credentials=credentials, identity=identity, created_at=created_at,
    )
