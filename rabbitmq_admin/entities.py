"""Persisted domain records.

These are the shapes stored in the JSON documents (see ``rabbitmq_admin.store``)
and passed between services.  API payloads live in ``rabbitmq_admin.models``;
in particular a :class:`ClusterConnection` is never returned to a caller as-is
because it carries the cluster password.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    ADMINISTRATOR = "ADMINISTRATOR"
    USER = "USER"


class User(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    username: str
    password_hash: str
    role: UserRole = UserRole.USER
    created_at: datetime = Field(default_factory=utcnow)
    failed_login_attempts: int = 0
    locked: bool = False
    locked_at: datetime | None = None
    last_failed_login_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMINISTRATOR


class ClusterConnection(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    api_url: str
    username: str
    password: str
    description: str | None = None
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    assigned_user_ids: set[UUID] = Field(default_factory=set)

    def is_accessible_by(self, user: User) -> bool:
        """Administrators see every cluster; other users only assigned ones."""
        return user.is_admin or user.id in self.assigned_user_ids


# ── Audit ─────────────────────────────────────────────────────────────────────


class AuditOperationType(str, Enum):
    CREATE_EXCHANGE = "CREATE_EXCHANGE"
    DELETE_EXCHANGE = "DELETE_EXCHANGE"
    CREATE_QUEUE = "CREATE_QUEUE"
    DELETE_QUEUE = "DELETE_QUEUE"
    PURGE_QUEUE = "PURGE_QUEUE"
    CREATE_BINDING_EXCHANGE = "CREATE_BINDING_EXCHANGE"
    CREATE_BINDING_QUEUE = "CREATE_BINDING_QUEUE"
    DELETE_BINDING = "DELETE_BINDING"
    PUBLISH_MESSAGE_EXCHANGE = "PUBLISH_MESSAGE_EXCHANGE"
    PUBLISH_MESSAGE_QUEUE = "PUBLISH_MESSAGE_QUEUE"
    MOVE_MESSAGES_QUEUE = "MOVE_MESSAGES_QUEUE"


class AuditOperationStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    PARTIAL = "PARTIAL"


class AuditRecord(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    username: str
    cluster_id: UUID
    cluster_name: str
    operation_type: AuditOperationType
    resource_type: str
    resource_name: str
    resource_details: dict[str, Any] | None = None
    status: AuditOperationStatus
    error_message: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    client_ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Caller:
    """The authenticated user plus request metadata recorded in the audit trail."""

    user: User
    client_ip: str | None = None
    user_agent: str | None = None
