"""Authorizing proxy in front of each cluster's Management API.

Every call is checked before anything goes over the wire:

  1. the cluster must exist            → ClusterNotFound
  2. the cluster must be active        → ClusterInactive
  3. the caller must be an administrator
     or assigned to the cluster        → AccessDenied

Only then is the pooled client used.  Upstream failures surface as the
``RabbitMQError`` taxonomy from ``rabbitmq_admin.clients.rabbitmq``.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from rabbitmq_admin.clients.pool import RabbitMQClientPool
from rabbitmq_admin.clients.rabbitmq import RabbitMQError
from rabbitmq_admin.entities import ClusterConnection, User
from rabbitmq_admin.errors import AccessDenied, ClusterInactive
from rabbitmq_admin.services.clusters import ClusterService

logger = logging.getLogger(__name__)


class RabbitMQProxy:
    def __init__(self, clusters: ClusterService, pool: RabbitMQClientPool) -> None:
        self._clusters = clusters
        self._pool = pool

    async def authorize(self, cluster_id: UUID, user: User) -> ClusterConnection:
        """Return the cluster if *user* may call it right now."""
        cluster = await self._clusters.get_cluster(cluster_id)
        if not cluster.active:
            logger.warning("User '%s' called inactive cluster '%s'", user.username, cluster.name)
            raise ClusterInactive(f"Cluster connection is not active: {cluster_id}")
        if not cluster.is_accessible_by(user):
            logger.warning("User '%s' denied access to cluster '%s'", user.username, cluster.name)
            raise AccessDenied(
                f"Access denied: User does not have permission to access cluster {cluster_id}"
            )
        return cluster

    async def request(
        self,
        method: str,
        cluster_id: UUID,
        path: str,
        user: User,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        cluster = await self.authorize(cluster_id, user)
        logger.debug("%s %s on cluster '%s' for '%s'", method, path, cluster.name, user.username)
        return await self.send(cluster, method, path, json=json, params=params)

    async def send(
        self,
        cluster: ClusterConnection,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Forward to a cluster already returned by :meth:`authorize`."""
        return await self._pool.get(cluster).request(method, path, json=json, params=params)

    async def get(self, cluster_id: UUID, path: str, user: User, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", cluster_id, path, user, params=params)

    async def post(self, cluster_id: UUID, path: str, user: User, json: Any = None) -> Any:
        return await self.request("POST", cluster_id, path, user, json=json)

    async def put(self, cluster_id: UUID, path: str, user: User, json: Any = None) -> Any:
        return await self.request("PUT", cluster_id, path, user, json=json)

    async def delete(self, cluster_id: UUID, path: str, user: User, params: dict[str, Any] | None = None) -> Any:
        return await self.request("DELETE", cluster_id, path, user, params=params)

    async def test_connection(self, cluster_id: UUID, user: User) -> bool:
        """True if ``api/overview`` answers; authorization failures still raise."""
        cluster = await self.authorize(cluster_id, user)
        try:
            await self._pool.get(cluster).check_overview()
        except RabbitMQError as exc:
            logger.warning("Connection test for cluster '%s' failed: %s", cluster.name, exc)
            return False
        return True
