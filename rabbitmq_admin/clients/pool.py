"""Per-cluster pool of RabbitMQ Management API clients.

Exactly one :class:`RabbitMQClient` exists per active cluster.  It is built on
first use, rebuilt when the cluster's URL, credentials or active flag change,
and closed when the cluster is deleted or deactivated.
"""

from __future__ import annotations

import logging
from uuid import UUID

import httpx

from rabbitmq_admin.clients.rabbitmq import RabbitMQClient
from rabbitmq_admin.entities import ClusterConnection
from rabbitmq_admin.errors import ClusterInactive

logger = logging.getLogger(__name__)


class RabbitMQClientPool:
    def __init__(
        self,
        *,
        timeout: float = 30.0,
        verify_tls: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._verify_tls = verify_tls
        self._transport = transport
        self._clients: dict[UUID, RabbitMQClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, cluster_id: object) -> bool:
        return cluster_id in self._clients

    def build_client(
        self,
        api_url: str,
        username: str,
        password: str,
        timeout: float | None = None,
    ) -> RabbitMQClient:
        """Build an unpooled client, e.g. for testing credentials before saving them."""
        return RabbitMQClient(
            api_url,
            username,
            password,
            timeout=self._timeout if timeout is None else timeout,
            verify_tls=self._verify_tls,
            transport=self._transport,
        )

    def get(self, cluster: ClusterConnection) -> RabbitMQClient:
        """Return the pooled client for *cluster*, building it on first use.

        Raises:
            ClusterInactive: the cluster is disabled; no client is built.
        """
        if not cluster.active:
            raise ClusterInactive(f"Cluster connection is not active: {cluster.id}")
        client = self._clients.get(cluster.id)
        if client is None or client.is_closed:
            client = self.build_client(cluster.api_url, cluster.username, cluster.password)
            self._clients[cluster.id] = client
            logger.info("Built RabbitMQ client for cluster '%s' (%s)", cluster.name, cluster.id)
        return client

    async def update(self, cluster: ClusterConnection) -> None:
        """Replace the client for *cluster* after its connection settings changed."""
        await self.remove(cluster.id)
        if cluster.active:
            self.get(cluster)

    async def remove(self, cluster_id: UUID) -> None:
        client = self._clients.pop(cluster_id, None)
        if client is not None:
            await client.aclose()
            logger.info("Evicted RabbitMQ client for cluster %s", cluster_id)

    async def aclose(self) -> None:
        """Close every pooled client (application shutdown)."""
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.aclose()
