"""Cluster connection management, user assignment and connection testing."""

from __future__ import annotations

import logging
import re
import time
from uuid import UUID

from rabbitmq_admin.clients.pool import RabbitMQClientPool
from rabbitmq_admin.clients.rabbitmq import (
    RabbitMQError,
    UpstreamConnectError,
    UpstreamHttpError,
    UpstreamNotFoundError,
    UpstreamTimeoutError,
    UpstreamUnauthorizedError,
)
from rabbitmq_admin.config import Settings
from rabbitmq_admin.entities import ClusterConnection, User
from rabbitmq_admin.errors import ClusterNotFound, DuplicateResource, UserNotFound, ValidationFailed
from rabbitmq_admin.models import (
    API_URL_PATTERN,
    ConnectionTestResponse,
    CreateClusterRequest,
    UpdateClusterRequest,
)
from rabbitmq_admin.services.state import cluster_name_taken, clusters_of, put_cluster, users_of
from rabbitmq_admin.store import JsonStore

logger = logging.getLogger(__name__)


class ClusterService:
    def __init__(self, store: JsonStore, pool: RabbitMQClientPool, settings: Settings) -> None:
        self._store = store
        self._pool = pool
        self._settings = settings

    # ── Queries ──────────────────────────────────────────────────────────────

    async def list_clusters(self, active_only: bool = False) -> list[ClusterConnection]:
        data = await self._store.load()
        clusters = clusters_of(data).values()
        return sorted(
            (c for c in clusters if c.active or not active_only),
            key=lambda c: c.name.casefold(),
        )

    async def get_cluster(self, cluster_id: UUID) -> ClusterConnection:
        data = await self._store.load()
        cluster = clusters_of(data).get(str(cluster_id))
        if cluster is None:
            raise ClusterNotFound(f"Cluster connection not found: {cluster_id}")
        return cluster

    async def name_exists(self, name: str) -> bool:
        return cluster_name_taken(await self._store.load(), name)

    async def clusters_for_user(self, user_id: UUID, active_only: bool = False) -> list[ClusterConnection]:
        return [c for c in await self.list_clusters(active_only) if user_id in c.assigned_user_ids]

    async def accessible_clusters(self, user: User, active_only: bool = False) -> list[ClusterConnection]:
        """All clusters for administrators, assigned ones for everybody else."""
        return [c for c in await self.list_clusters(active_only) if c.is_accessible_by(user)]

    async def assigned_users(self, cluster_id: UUID) -> list[User]:
        data = await self._store.load()
        cluster = clusters_of(data).get(str(cluster_id))
        if cluster is None:
            raise ClusterNotFound(f"Cluster connection not found: {cluster_id}")
        users = users_of(data)
        return sorted(
            (users[str(uid)] for uid in cluster.assigned_user_ids if str(uid) in users),
            key=lambda u: u.username.casefold(),
        )

    async def unassigned_users(self, cluster_id: UUID) -> list[User]:
        data = await self._store.load()
        cluster = clusters_of(data).get(str(cluster_id))
        if cluster is None:
            raise ClusterNotFound(f"Cluster connection not found: {cluster_id}")
        return sorted(
            (u for u in users_of(data).values() if u.id not in cluster.assigned_user_ids),
            key=lambda u: u.username.casefold(),
        )

    # ── Mutations ────────────────────────────────────────────────────────────

    async def create_cluster(self, request: CreateClusterRequest) -> ClusterConnection:
        async with self._store.edit() as data:
            if cluster_name_taken(data, request.name):
                raise DuplicateResource(f"Cluster connection name already exists: {request.name}")
            _check_users_exist(data, request.assigned_user_ids)
            cluster = ClusterConnection(
                name=request.name,
                api_url=request.api_url.rstrip("/"),
                username=request.username,
                password=request.password,
                description=request.description,
                active=request.active,
                assigned_user_ids=set(request.assigned_user_ids),
            )
            put_cluster(data, cluster)
        logger.info("Created cluster connection '%s' (%s)", cluster.name, cluster.id)
        return cluster

    async def update_cluster(self, cluster_id: UUID, request: UpdateClusterRequest) -> ClusterConnection:
        """Apply a partial update; rebuild the pooled client if connection settings changed."""
        async with self._store.edit() as data:
            cluster = clusters_of(data).get(str(cluster_id))
            if cluster is None:
                raise ClusterNotFound(f"Cluster connection not found: {cluster_id}")
            before = (cluster.api_url, cluster.username, cluster.password, cluster.active)

            if request.name and request.name != cluster.name:
                if cluster_name_taken(data, request.name, exclude=str(cluster_id)):
                    raise DuplicateResource(f"Cluster connection name already exists: {request.name}")
                cluster.name = request.name
            if request.api_url and request.api_url.strip():
                _check_api_url(request.api_url)
                cluster.api_url = request.api_url.strip().rstrip("/")
            if request.username and request.username.strip():
                cluster.username = request.username
            if request.password and request.password.strip():
                cluster.password = request.password
            if request.description is not None:
                cluster.description = request.description
            if request.active is not None:
                cluster.active = request.active
            if request.assigned_user_ids is not None:
                _check_users_exist(data, request.assigned_user_ids)
                cluster.assigned_user_ids = set(request.assigned_user_ids)
            put_cluster(data, cluster)

        if before != (cluster.api_url, cluster.username, cluster.password, cluster.active):
            await self._pool.update(cluster)
        logger.info("Updated cluster connection '%s' (%s)", cluster.name, cluster.id)
        return cluster

    async def delete_cluster(self, cluster_id: UUID) -> None:
        async with self._store.edit() as data:
            if str(cluster_id) not in data.get("clusters", {}):
                raise ClusterNotFound(f"Cluster connection not found: {cluster_id}")
            del data["clusters"][str(cluster_id)]
        await self._pool.remove(cluster_id)
        logger.info("Deleted cluster connection %s", cluster_id)

    async def assign_user(self, cluster_id: UUID, user_id: UUID) -> ClusterConnection:
        async with self._store.edit() as data:
            cluster = clusters_of(data).get(str(cluster_id))
            if cluster is None:
                raise ClusterNotFound(f"Cluster connection not found: {cluster_id}")
            _check_users_exist(data, {user_id})
            cluster.assigned_user_ids.add(user_id)
            put_cluster(data, cluster)
        logger.info("Assigned user %s to cluster '%s'", user_id, cluster.name)
        return cluster

    async def unassign_user(self, cluster_id: UUID, user_id: UUID) -> ClusterConnection:
        async with self._store.edit() as data:
            cluster = clusters_of(data).get(str(cluster_id))
            if cluster is None:
                raise ClusterNotFound(f"Cluster connection not found: {cluster_id}")
            _check_users_exist(data, {user_id})
            cluster.assigned_user_ids.discard(user_id)
            put_cluster(data, cluster)
        logger.info("Removed user %s from cluster '%s'", user_id, cluster.name)
        return cluster

    # ── Connection tests ─────────────────────────────────────────────────────

    async def test_connection(self, api_url: str, username: str, password: str) -> ConnectionTestResponse:
        """Probe ``api/overview`` with the given credentials without touching the pool."""
        started = time.perf_counter()
        client = self._pool.build_client(
            api_url, username, password, timeout=self._settings.rabbitmq_connection_test_timeout
        )
        async with client:
            try:
                await client.check_overview()
            except RabbitMQError as exc:
                elapsed = int((time.perf_counter() - started) * 1000)
                logger.warning("Connection test against %s failed: %s", api_url, exc)
                return ConnectionTestResponse(
                    successful=False,
                    message=_failure_message(exc),
                    error_details=str(exc),
                    response_time_ms=elapsed,
                )
        elapsed = int((time.perf_counter() - started) * 1000)
        return ConnectionTestResponse(
            successful=True,
            message="Connection successful - RabbitMQ API is accessible",
            response_time_ms=elapsed,
        )

    async def test_cluster(self, cluster_id: UUID) -> ConnectionTestResponse:
        cluster = await self.get_cluster(cluster_id)
        return await self.test_connection(cluster.api_url, cluster.username, cluster.password)


def _failure_message(exc: RabbitMQError) -> str:
    if isinstance(exc, UpstreamUnauthorizedError):
        return "Invalid credentials - authentication failed"
    if isinstance(exc, UpstreamHttpError) and exc.status == 403:
        return "Access forbidden - insufficient permissions"
    if isinstance(exc, UpstreamNotFoundError):
        return "RabbitMQ Management API not found at the specified URL"
    if isinstance(exc, (UpstreamConnectError, UpstreamTimeoutError)):
        return "Connection timeout or network error"
    return "Unexpected error during connection test"


def _check_users_exist(data: dict, user_ids: set[UUID]) -> None:
    known = users_of(data)
    for user_id in user_ids:
        if str(user_id) not in known:
            raise UserNotFound(f"User not found: {user_id}")


def _check_api_url(api_url: str) -> None:
    if not re.match(API_URL_PATTERN, api_url.strip()):
        raise ValidationFailed("API URL must be a valid HTTP or HTTPS URL")
