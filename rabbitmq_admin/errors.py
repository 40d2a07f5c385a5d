"""Application error hierarchy.

Every error raised by the service layer derives from :class:`AdminError` and
carries the HTTP status it is rendered with.  A single exception handler in
``rabbitmq_admin.main`` turns them into JSON responses, so routers never
build ``HTTPException`` objects for domain failures.

The RabbitMQ upstream taxonomy (``RabbitMQError`` and friends) lives next to
the HTTP client in ``rabbitmq_admin.clients.rabbitmq``.
"""

from __future__ import annotations

from typing import Any


class AdminError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = 500
    title: str = "Internal Server Error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


# ── Request / input problems ──────────────────────────────────────────────────


class ValidationFailed(AdminError):
    status_code = 400
    title = "Validation Failed"


class DuplicateResource(AdminError):
    status_code = 409
    title = "Duplicate Resource"


# ── Authentication / authorization ────────────────────────────────────────────


class AuthenticationFailed(AdminError):
    status_code = 401
    title = "Authentication Failed"


class AccountLocked(AuthenticationFailed):
    status_code = 423
    title = "Account Locked"


class AccessDenied(AdminError):
    status_code = 403
    title = "Access Denied"


# ── Missing entities ──────────────────────────────────────────────────────────


class NotFound(AdminError):
    status_code = 404
    title = "Not Found"


class UserNotFound(NotFound):
    title = "User Not Found"


class ClusterNotFound(NotFound):
    title = "Cluster Connection Not Found"


class ClusterInactive(AdminError):
    """The cluster exists but is disabled; no connection may be attempted."""

    status_code = 400
    title = "Cluster Connection Inactive"
