"""Tests for the per-cluster client pool and its lifecycle hooks in ClusterService."""

from __future__ import annotations

import base64

import pytest

from rabbitmq_admin.clients.pool import RabbitMQClientPool
from rabbitmq_admin.entities import ClusterConnection
from rabbitmq_admin.errors import ClusterInactive
from rabbitmq_admin.models import CreateClusterRequest, UpdateClusterRequest
from rabbitmq_admin.services.clusters import ClusterService
from tests.conftest import CLUSTER_URL, FakeRabbitMQ

pytestmark = pytest.mark.asyncio


def _cluster(active: bool = True) -> ClusterConnection:
    return ClusterConnection(
        name="staging", api_url=CLUSTER_URL, username="guest", password="guest", active=active
    )


async def _create(clusters: ClusterService) -> ClusterConnection:
    return await clusters.create_cluster(
        CreateClusterRequest(name="staging", api_url=CLUSTER_URL, username="guest", password="guest")
    )


# ── Pool ──────────────────────────────────────────────────────────────────────


async def test_one_client_per_cluster(client_pool: RabbitMQClientPool) -> None:
    a, b = _cluster(), _cluster()
    first = client_pool.get(a)
    assert client_pool.get(a) is first
    assert client_pool.get(b) is not first
    assert len(client_pool) == 2
    await client_pool.aclose()


async def test_inactive_cluster_gets_no_client(client_pool: RabbitMQClientPool) -> None:
    with pytest.raises(ClusterInactive):
        client_pool.get(_cluster(active=False))
    assert len(client_pool) == 0


async def test_update_rebuilds_and_closes_old_client(client_pool: RabbitMQClientPool) -> None:
    cluster = _cluster()
    old = client_pool.get(cluster)
    await client_pool.update(cluster.model_copy(update={"password": "rotated"}))
    assert old.is_closed
    new = client_pool.get(cluster)
    assert new is not old
    assert not new.is_closed


async def test_update_to_inactive_evicts(client_pool: RabbitMQClientPool) -> None:
    cluster = _cluster()
    old = client_pool.get(cluster)
    await client_pool.update(cluster.model_copy(update={"active": False}))
    assert old.is_closed
    assert cluster.id not in client_pool


async def test_aclose_closes_everything(client_pool: RabbitMQClientPool) -> None:
    clients = [client_pool.get(_cluster()) for _ in range(3)]
    await client_pool.aclose()
    assert len(client_pool) == 0
    assert all(c.is_closed for c in clients)


# ── ClusterService integration ────────────────────────────────────────────────


async def test_credential_change_rebuilds_pooled_client(
    cluster_service: ClusterService, client_pool: RabbitMQClientPool, fake_rabbit: FakeRabbitMQ
) -> None:
    cluster = await _create(cluster_service)
    old = client_pool.get(cluster)

    await cluster_service.update_cluster(cluster.id, UpdateClusterRequest(username="admin", password="s3cret"))
    assert old.is_closed
    fake_rabbit.add("GET", "/api/overview", {})
    updated = await cluster_service.get_cluster(cluster.id)
    await client_pool.get(updated).check_overview()
    sent = fake_rabbit.requests[-1].headers["authorization"]
    assert sent == "Basic " + base64.b64encode(b"admin:s3cret").decode()


async def test_description_change_keeps_pooled_client(
    cluster_service: ClusterService, client_pool: RabbitMQClientPool
) -> None:
    cluster = await _create(cluster_service)
    client = client_pool.get(cluster)
    await cluster_service.update_cluster(cluster.id, UpdateClusterRequest(description="renamed"))
    assert not client.is_closed
    assert client_pool.get(cluster) is client


async def test_delete_evicts_pooled_client(
    cluster_service: ClusterService, client_pool: RabbitMQClientPool
) -> None:
    cluster = await _create(cluster_service)
    client = client_pool.get(cluster)
    await cluster_service.delete_cluster(cluster.id)
    assert client.is_closed
    assert cluster.id not in client_pool
