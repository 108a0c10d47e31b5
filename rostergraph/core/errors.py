"""Error Hierarchy — typed, categorized exceptions for all RosterGraph failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - 400-level errors are raised before any IO; 500-level errors come from the provider or the store
    - to_response() produces the REST envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with RosterGraphError base: one FastAPI handler catches all (ADR: uniform error shape)
    - AuthError carries an AuthFailure reason; the handler clears the session cookie for every 401
    - UpstreamError may carry a partial sync summary so callers see which roster classes committed
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone

from rostergraph.core.domain_types import AuthFailure


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    course_id: str | None = None
    user_id: str | None = None
    roster_class: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class RosterGraphError(Exception):
    """Base exception for all RosterGraph errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "course_id": self.context.course_id,
                    "roster_class": self.context.roster_class,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Request Errors (400-level) ─────────────────────────────────

class ValidationError(RosterGraphError):
    """Malformed or missing input."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class AuthError(RosterGraphError):
    """Session missing, expired, or unreadable."""

    _MESSAGES = {
        AuthFailure.UNAUTHENTICATED: "Unauthorized: no valid session.",
        AuthFailure.EXPIRED: "Session expired. Please re-authenticate.",
        AuthFailure.INVALID: "Invalid session. Please re-authenticate.",
    }

    def __init__(self, reason: AuthFailure, context: ErrorContext | None = None):
        super().__init__(
            self._MESSAGES[reason], f"AUTH_{reason.name}",
            ErrorCategory.AUTHENTICATION, ErrorSeverity.WARNING, context, 401,
        )
        self.reason = reason


class ForbiddenError(RosterGraphError):
    """Caller's role set does not permit the operation."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "FORBIDDEN", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class ResourceNotFoundError(RosterGraphError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(RosterGraphError):
    """Write would duplicate an existing role or ownership."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class UpstreamError(RosterGraphError):
    """Provider or store call failed.

    status_code is the upstream HTTP status when one was received, so the
    session manager can tell a rejected credential from an outage.
    """
    def __init__(
        self,
        message: str,
        service: str,
        status_code: int | None = None,
        summary: dict | None = None,
        context: ErrorContext | None = None,
        category: ErrorCategory = ErrorCategory.EXTERNAL_API,
        code: str = "UPSTREAM_ERROR",
    ):
        super().__init__(
            f"{service} failed: {message}", code, category,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.service = service
        self.status_code = status_code
        self.summary = summary

    @property
    def rejected(self) -> bool:
        """True when the upstream answered and refused the credential."""
        return self.status_code in (400, 401, 403)

    def to_response(self) -> dict:
        body = super().to_response()
        if self.summary is not None:
            body["error"]["summary"] = self.summary
        return body


class DatabaseError(UpstreamError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            message, f"database {operation}", context=context,
            category=ErrorCategory.DATABASE, code="DATABASE_ERROR",
        )
        self.operation = operation


class UpstreamTimeoutError(UpstreamError):
    """Provider or store call exceeded its time bound."""
    def __init__(self, service: str, timeout_seconds: float, context: ErrorContext | None = None):
        super().__init__(
            f"timed out after {timeout_seconds}s", service, context=context,
            category=ErrorCategory.TIMEOUT, code="UPSTREAM_TIMEOUT",
        )
        self.timeout_seconds = timeout_seconds
