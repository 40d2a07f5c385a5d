"""Pydantic request / response models for the RabbitMQ Admin API.

Field names are snake_case in Python and camelCase on the wire; both spellings
are accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from rabbitmq_admin.entities import (
    AuditOperationStatus,
    AuditOperationType,
    AuditRecord,
    ClusterConnection,
    User,
    UserRole,
    utcnow,
)

T = TypeVar("T")

NAME_PATTERN = r"^[a-zA-Z0-9._-]+$"
USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"
API_URL_PATTERN = r"^https?://[\w\-.~:/?#\[\]@!$&'()*+,;=%]+$"
MAX_PAYLOAD_BYTES = 1024 * 1024


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Pagination ────────────────────────────────────────────────────────────────


class PageRequest(ApiModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(50, ge=1, le=500)
    name: str | None = Field(None, description="Name filter (substring, or regex with useRegex)")
    use_regex: bool = False


class PagedResponse(ApiModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


# ── Authentication ────────────────────────────────────────────────────────────


class LoginRequest(ApiModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(..., min_length=1)


class UserInfo(ApiModel):
    id: UUID
    username: str
    role: UserRole
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserInfo:
        return cls(id=user.id, username=user.username, role=user.role, created_at=user.created_at)


class TokenResponse(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    user: UserInfo


class TokenValidationResponse(ApiModel):
    valid: bool
    username: str
    role: UserRole
    expires_in: int


# ── Users ─────────────────────────────────────────────────────────────────────


class CreateUserRequest(ApiModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(..., max_length=128)
    role: UserRole = UserRole.USER


class UpdateUserRequest(ApiModel):
    username: str | None = Field(None, min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    password: str | None = Field(None, max_length=128)
    role: UserRole | None = None


class ClusterSummary(ApiModel):
    id: UUID
    name: str
    active: bool


class UserResponse(ApiModel):
    id: UUID
    username: str
    role: UserRole
    created_at: datetime
    locked: bool
    locked_at: datetime | None = None
    failed_login_attempts: int = 0
    assigned_clusters: list[ClusterSummary] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: User, clusters: list[ClusterConnection] | None = None) -> UserResponse:
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            created_at=user.created_at,
            locked=user.locked,
            locked_at=user.locked_at,
            failed_login_attempts=user.failed_login_attempts,
            assigned_clusters=[
                ClusterSummary(id=c.id, name=c.name, active=c.active) for c in clusters or []
            ],
        )


# ── Cluster connections ───────────────────────────────────────────────────────


class CreateClusterRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    api_url: str = Field(..., pattern=API_URL_PATTERN, description="Management API base URL")
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    description: str | None = Field(None, max_length=500)
    active: bool = True
    assigned_user_ids: set[UUID] = Field(default_factory=set)


class UpdateClusterRequest(ApiModel):
    """Partial update; blank connection fields are ignored."""

    name: str | None = Field(None, min_length=1, max_length=100)
    api_url: str | None = None
    username: str | None = Field(None, max_length=100)
    password: str | None = None
    description: str | None = Field(None, max_length=500)
    active: bool | None = None
    assigned_user_ids: set[UUID] | None = None


class UserSummary(ApiModel):
    id: UUID
    username: str
    role: UserRole


class ClusterResponse(ApiModel):
    """Cluster connection as shown to callers.  The password is never included."""

    id: UUID
    name: str
    api_url: str
    username: str
    description: str | None = None
    active: bool
    created_at: datetime
    assigned_users: list[UserSummary] = Field(default_factory=list)

    @classmethod
    def from_cluster(cls, cluster: ClusterConnection, users: list[User] | None = None) -> ClusterResponse:
        return cls(
            id=cluster.id,
            name=cluster.name,
            api_url=cluster.api_url,
            username=cluster.username,
            description=cluster.description,
            active=cluster.active,
            created_at=cluster.created_at,
            assigned_users=[UserSummary(id=u.id, username=u.username, role=u.role) for u in users or []],
        )


class ConnectionTestRequest(ApiModel):
    api_url: str = Field(..., pattern=API_URL_PATTERN)
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ConnectionTestResponse(ApiModel):
    successful: bool
    message: str
    error_details: str | None = None
    response_time_ms: int | None = None


class NameExistsResponse(ApiModel):
    exists: bool


class ConnectivityResponse(ApiModel):
    connected: bool


# ── RabbitMQ resources ────────────────────────────────────────────────────────


class CreateExchangeRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=255, pattern=NAME_PATTERN)
    type: str = Field(..., pattern=r"^(direct|fanout|topic|headers)$")
    vhost: str = Field(..., min_length=1)
    durable: bool = True
    auto_delete: bool = False
    internal: bool = False
    arguments: dict[str, Any] = Field(default_factory=dict)


class CreateQueueRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=255, pattern=NAME_PATTERN)
    vhost: str = Field(..., min_length=1)
    durable: bool = True
    auto_delete: bool = False
    exclusive: bool = False
    arguments: dict[str, Any] = Field(default_factory=dict)
    node: str | None = None


class CreateBindingRequest(ApiModel):
    routing_key: str = Field("", max_length=255)
    arguments: dict[str, Any] = Field(default_factory=dict)


class PublishMessageRequest(ApiModel):
    routing_key: str = Field("", max_length=255)
    properties: dict[str, Any] = Field(default_factory=dict)
    payload: str
    payload_encoding: str = Field("string", pattern=r"^(string|base64)$")

    @field_validator("payload")
    @classmethod
    def payload_within_limit(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PAYLOAD_BYTES:
            raise ValueError(f"payload must not exceed {MAX_PAYLOAD_BYTES} bytes")
        return value


class PublishResponse(ApiModel):
    routed: bool


class GetMessagesRequest(ApiModel):
    count: int = Field(1, ge=1, le=100)
    ackmode: str = Field(
        "ack_requeue_true",
        pattern=r"^(ack_requeue_true|ack_requeue_false|reject_requeue_true|reject_requeue_false)$",
    )
    encoding: str = Field("auto", pattern=r"^(auto|base64)$")
    truncate: int | None = Field(None, ge=1, le=MAX_PAYLOAD_BYTES)


class CreateShovelRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=255, pattern=NAME_PATTERN)
    vhost: str = Field(..., min_length=1)
    source_queue: str = Field(..., min_length=1, max_length=255, pattern=NAME_PATTERN)
    destination_queue: str = Field(..., min_length=1, max_length=255, pattern=NAME_PATTERN)
    source_uri: str = "amqp://localhost"
    destination_uri: str = "amqp://localhost"
    delete_after: str = Field("queue-length", pattern=r"^(queue-length|never)$")
    ack_mode: str = Field("on-confirm", pattern=r"^(on-confirm|on-publish|no-ack)$")


# ── Audit ─────────────────────────────────────────────────────────────────────


class AuditResponse(ApiModel):
    id: UUID
    username: str
    cluster_id: UUID
    cluster_name: str
    operation_type: AuditOperationType
    resource_type: str
    resource_name: str
    resource_details: dict[str, Any] | None = None
    status: AuditOperationStatus
    error_message: str | None = None
    timestamp: datetime
    client_ip: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_record(cls, record: AuditRecord) -> AuditResponse:
        return cls(**record.model_dump())


class AuditFilter(ApiModel):
    username: str | None = None
    cluster_name: str | None = None
    operation_type: AuditOperationType | None = None
    status: AuditOperationStatus | None = None
    resource_name: str | None = None
    resource_type: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


class AuditConfigurationResponse(ApiModel):
    write_operations_enabled: bool
    retention_enabled: bool
    retention_days: int
    retention_interval_hours: float


class AuditCleanupResponse(ApiModel):
    deleted: int


# ── Monitoring ────────────────────────────────────────────────────────────────


class ClusterHealth(ApiModel):
    cluster_id: UUID
    cluster_name: str
    healthy: bool
    message: str
    last_checked: datetime = Field(default_factory=utcnow)
    response_time_ms: int | None = None
    rabbitmq_version: str | None = None
    node_count: int | None = None
    running_nodes: int | None = None


class ClusterHealthSummary(ApiModel):
    """UP when every active cluster is healthy, DOWN when none is, DEGRADED in between."""

    status: str
    total_clusters: int = 0
    healthy_clusters: int = 0
    unhealthy_clusters: int = 0
    clusters: list[ClusterHealth] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)


# ── Health ────────────────────────────────────────────────────────────────────


class HealthResponse(ApiModel):
    status: str = "ok"
    service: str = "rabbitmq-admin"
