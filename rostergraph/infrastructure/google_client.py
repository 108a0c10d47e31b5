"""Google Clients — identity (OAuth2 + userinfo) and Classroom roster provider over httpx.

Invariants:
    - Rate limits (429) and transient failures (5xx, connection): bounded retries,
      exponential backoff with jitter, Retry-After honored
    - Client errors (4xx except 429): immediate failure, no retry, status_code preserved
    - Timeouts: UpstreamTimeoutError, no retry (the caller owns the overall time bound)
    - List calls follow nextPageToken to completion before returning
    - Every failure surfaces as UpstreamError (core/errors.py)

Design Decisions:
    - Clients are built per request from Settings and the caller's credentials:
      no module-level OAuth client, no shared mutable credentials
    - Wire records flattened to plain dicts here; validation stays in core/reconcile.py
    - ±25% jitter on backoff: spreads retries from parallel requests
"""

import asyncio
import logging
import random
from datetime import datetime, timezone
from urllib.parse import quote

import httpx

from rostergraph.config import Settings
from rostergraph.core.errors import ErrorContext, UpstreamError, UpstreamTimeoutError
from rostergraph.core.session_state import Credentials, Identity

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ResilientHttp:
    """Retry/backoff wrapper around a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        service: str,
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
    ):
        self.client = client
        self.service = service
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def request_json(
        self, method: str, url: str, context: ErrorContext | None = None, **kwargs,
    ) -> dict:
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.TimeoutException:
                raise UpstreamTimeoutError(
                    self.service, self.client.timeout.read or 0, context=context,
                )
            except httpx.TransportError as e:
                await self._retry_or_raise(attempt, f"connection error: {e}", None, context)
                continue

            if response.status_code in _RETRYABLE_STATUS:
                await self._retry_or_raise(
                    attempt, f"HTTP {response.status_code}", response, context,
                )
                continue
            if response.is_error:
                raise UpstreamError(
                    f"HTTP {response.status_code}", self.service,
                    status_code=response.status_code, context=context,
                )
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamError(
                    f"invalid JSON body: {e}", self.service,
                    status_code=response.status_code, context=context,
                ) from e
        raise UpstreamError("retries exhausted", self.service, context=context)

    async def _retry_or_raise(
        self,
        attempt: int,
        reason: str,
        response: httpx.Response | None,
        context: ErrorContext | None,
    ) -> None:
        status_code = response.status_code if response is not None else None
        if attempt >= self.max_retries:
            raise UpstreamError(
                f"{reason} after {self.max_retries} retries", self.service,
                status_code=status_code, context=context,
            )
        delay = self._retry_after(response) or self._backoff(attempt)
        logger.warning(
            f"{self.service}: {reason}, retry after {delay}ms",
            extra={"attempt": attempt + 1, "status_code": status_code},
        )
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _retry_after(self, response: httpx.Response | None) -> int | None:
        """Retry-After header in milliseconds, when present and numeric."""
        if response is None:
            return None
        val = response.headers.get("retry-after")
        if val and val.isdigit():
            return min(int(val) * 1000, self.max_delay_ms)
        return None


def _resilient(client: httpx.AsyncClient, service: str, settings: Settings) -> ResilientHttp:
    return ResilientHttp(
        client, service,
        max_retries=settings.provider_max_retries,
        base_delay_ms=settings.provider_base_delay_ms,
        max_delay_ms=settings.provider_max_delay_ms,
    )


def _credentials_from_token_response(data: dict) -> Credentials:
    if not data.get("access_token"):
        raise UpstreamError("token response without access_token", "google oauth")
    expires_in = data.get("expires_in")
    expires_at = None
    if isinstance(expires_in, (int, float)):
        expires_at = datetime.now(timezone.utc).timestamp() + expires_in
    return Credentials(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=expires_at,
        token_type=data.get("token_type", "Bearer"),
        scope=data.get("scope"),
    )


class GoogleIdentityProvider:
    """IdentityProvider backed by Google OAuth2."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.http = _resilient(client, "google oauth", settings)

    async def exchange_code(self, code: str) -> Credentials:
        data = await self.http.request_json("POST", self.settings.google_token_url, data={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.settings.google_client_id,
            "client_secret": self.settings.google_client_secret,
            "redirect_uri": self.settings.google_redirect_uri,
        })
        return _credentials_from_token_response(data)

    async def refresh_token(self, refresh_token: str) -> Credentials:
        data = await self.http.request_json("POST", self.settings.google_token_url, data={
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.settings.google_client_id,
            "client_secret": self.settings.google_client_secret,
        })
        return _credentials_from_token_response(data)

    async def get_user_info(self, access_token: str) -> Identity:
        data = await self.http.request_json(
            "GET", self.settings.google_userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not data.get("id"):
            raise UpstreamError("userinfo without id", "google userinfo")
        return Identity(
            id=str(data["id"]),
            email=data.get("email"),
            name=data.get("name"),
            picture=data.get("picture"),
        )


# ─── Classroom ──────────────────────────────────────────────────

def _member(record: dict) -> dict:
    profile = record.get("profile") or {}
    return {
        "id": record.get("userId") or profile.get("id"),
        "name": (profile.get("name") or {}).get("fullName"),
        "email": profile.get("emailAddress"),
        "photo_url": profile.get("photoUrl"),
    }


def _course(record: dict) -> dict:
    return {
        "id": record.get("id"),
        "name": record.get("name"),
        "section": record.get("section"),
        "state": record.get("courseState"),
        "link": record.get("alternateLink"),
        "created_at": record.get("creationTime"),
        "updated_at": record.get("updateTime"),
    }


def _work(record: dict) -> dict:
    return {
        "id": record.get("id"),
        "title": record.get("title"),
        "description": record.get("description"),
        "work_type": record.get("workType"),
        "due_date": record.get("dueDate"),
        "due_time": record.get("dueTime"),
        "max_points": record.get("maxPoints"),
        "link": record.get("alternateLink"),
    }


def _submission(record: dict) -> dict:
    return {
        "id": record.get("id"),
        "user_id": record.get("userId"),
        "state": record.get("state"),
        "grade": record.get("assignedGrade"),
        "late": record.get("late", False),
        "link": record.get("alternateLink"),
    }


class GoogleClassroomProvider:
    """RosterProvider backed by the Classroom v1 REST API."""

    def __init__(self, settings: Settings, access_token: str, client: httpx.AsyncClient):
        self.settings = settings
        self.base_url = settings.classroom_base_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {access_token}"}
        self.http = _resilient(client, "google classroom", settings)

    def _url(self, *segments: str) -> str:
        return "/".join([self.base_url, *(quote(str(s), safe="") for s in segments)])

    async def _list(self, url: str, field: str, params: dict | None = None) -> list[dict]:
        items: list[dict] = []
        query = dict(params or {})
        query["pageSize"] = self.settings.classroom_page_size
        while True:
            data = await self.http.request_json("GET", url, params=query, headers=self.headers)
            items.extend(data.get(field) or [])
            token = data.get("nextPageToken")
            if not token:
                return items
            query["pageToken"] = token

    async def list_courses(self, teacher_id: str = "me") -> list[dict]:
        records = await self._list(
            self._url("courses"), "courses",
            {"teacherId": teacher_id, "courseStates": "ACTIVE"},
        )
        return [_course(r) for r in records]

    async def get_course(self, course_id: str) -> dict:
        data = await self.http.request_json(
            "GET", self._url("courses", course_id), headers=self.headers,
        )
        return _course(data)

    async def list_teachers(self, course_id: str) -> list[dict]:
        records = await self._list(self._url("courses", course_id, "teachers"), "teachers")
        return [_member(r) for r in records]

    async def list_students(self, course_id: str) -> list[dict]:
        records = await self._list(self._url("courses", course_id, "students"), "students")
        return [_member(r) for r in records]

    async def list_course_work(self, course_id: str) -> list[dict]:
        records = await self._list(self._url("courses", course_id, "courseWork"), "courseWork")
        return [_work(r) for r in records]

    async def list_submissions(
        self, course_id: str, work_id: str, user_id: str | None = None,
    ) -> list[dict]:
        params = {"userId": user_id} if user_id else None
        records = await self._list(
            self._url("courses", course_id, "courseWork", work_id, "studentSubmissions"),
            "studentSubmissions", params,
        )
        return [_submission(r) for r in records]
