"""Cluster health monitoring.

A health check calls ``api/overview`` and ``api/nodes`` through the pooled
client of an active cluster.  The cluster is healthy when both answer and
every node reports ``running``.  Results are kept in a process-wide
:class:`HealthCache` and reused until they are older than
``settings.health_check_interval_minutes``; the refresh operations always
check again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from datetime import timedelta
from typing import Any
from uuid import UUID

from rabbitmq_admin.clients.pool import RabbitMQClientPool
from rabbitmq_admin.clients.rabbitmq import RabbitMQClient, RabbitMQError
from rabbitmq_admin.config import Settings
from rabbitmq_admin.entities import ClusterConnection, utcnow
from rabbitmq_admin.models import ClusterHealth, ClusterHealthSummary
from rabbitmq_admin.services.clusters import ClusterService

logger = logging.getLogger(__name__)


class HealthCache:
    """Latest :class:`ClusterHealth` per cluster id."""

    def __init__(self) -> None:
        self._results: dict[UUID, ClusterHealth] = {}

    def get(self, cluster_id: UUID) -> ClusterHealth | None:
        return self._results.get(cluster_id)

    def put(self, result: ClusterHealth) -> None:
        self._results[result.cluster_id] = result

    def retain(self, cluster_ids: Iterable[UUID]) -> None:
        """Forget results for clusters not in *cluster_ids*."""
        keep = set(cluster_ids)
        self._results = {cid: r for cid, r in self._results.items() if cid in keep}

    def __len__(self) -> int:
        return len(self._results)


class ClusterHealthService:
    def __init__(
        self,
        clusters: ClusterService,
        pool: RabbitMQClientPool,
        cache: HealthCache,
        settings: Settings,
    ) -> None:
        self._clusters = clusters
        self._pool = pool
        self._cache = cache
        self._settings = settings

    async def check(self, cluster_id: UUID) -> ClusterHealth:
        """Cached health of one cluster, checked again once the entry is stale."""
        return await self._cached_or_check(await self._clusters.get_cluster(cluster_id))

    async def refresh(self, cluster_id: UUID) -> ClusterHealth:
        return await self._check(await self._clusters.get_cluster(cluster_id))

    async def summary(self) -> ClusterHealthSummary:
        """Health of every active cluster, reusing fresh cache entries."""
        active = await self._clusters.list_clusters(active_only=True)
        results = await asyncio.gather(*(self._cached_or_check(c) for c in active))
        return summarize(results)

    async def refresh_all(self) -> ClusterHealthSummary:
        active = await self._clusters.list_clusters(active_only=True)
        logger.info("Refreshing health of %d active cluster(s)", len(active))
        results = await asyncio.gather(*(self._check(c) for c in active))
        self._cache.retain(c.id for c in active)
        return summarize(results)

    # ── Internal helpers ─────────────────────────────────────────────────────

    async def _cached_or_check(self, cluster: ClusterConnection) -> ClusterHealth:
        cached = self._cache.get(cluster.id)
        max_age = timedelta(minutes=self._settings.health_check_interval_minutes)
        if cached is not None and utcnow() - cached.last_checked <= max_age:
            return cached
        return await self._check(cluster)

    async def _check(self, cluster: ClusterConnection) -> ClusterHealth:
        if not cluster.active:
            result = ClusterHealth(
                cluster_id=cluster.id, cluster_name=cluster.name, healthy=False, message="Cluster is inactive"
            )
            self._cache.put(result)
            return result

        started = time.perf_counter()
        try:
            overview, nodes = await asyncio.wait_for(
                _fetch(self._pool.get(cluster)), timeout=self._settings.health_check_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Health check for cluster '%s' timed out", cluster.name)
            result = ClusterHealth(
                cluster_id=cluster.id,
                cluster_name=cluster.name,
                healthy=False,
                message="Health check failed: request to RabbitMQ cluster timed out",
                response_time_ms=_elapsed_ms(started),
            )
        except RabbitMQError as exc:
            logger.warning("Health check for cluster '%s' failed: %s", cluster.name, exc)
            result = ClusterHealth(
                cluster_id=cluster.id,
                cluster_name=cluster.name,
                healthy=False,
                message=f"Health check failed: {exc.message}",
                response_time_ms=_elapsed_ms(started),
            )
        else:
            result = _from_answers(cluster, overview, nodes, _elapsed_ms(started))
        self._cache.put(result)
        return result


async def _fetch(client: RabbitMQClient) -> tuple[Any, Any]:
    overview = await client.check_overview()
    nodes = await client.get("api/nodes")
    return overview, nodes


def _from_answers(cluster: ClusterConnection, overview: Any, nodes: Any, elapsed_ms: int) -> ClusterHealth:
    nodes = nodes if isinstance(nodes, list) else []
    running = sum(1 for n in nodes if isinstance(n, dict) and n.get("running"))
    down = len(nodes) - running
    version = overview.get("rabbitmq_version") if isinstance(overview, dict) else None
    if down:
        logger.warning("Cluster '%s' has %d of %d node(s) not running", cluster.name, down, len(nodes))
    return ClusterHealth(
        cluster_id=cluster.id,
        cluster_name=cluster.name,
        healthy=down == 0,
        message="Cluster is healthy" if down == 0 else f"{down} of {len(nodes)} node(s) not running",
        response_time_ms=elapsed_ms,
        rabbitmq_version=version,
        node_count=len(nodes),
        running_nodes=running,
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def summarize(results: Iterable[ClusterHealth]) -> ClusterHealthSummary:
    ordered = sorted(results, key=lambda r: r.cluster_name.casefold())
    healthy = sum(1 for r in ordered if r.healthy)
    if not ordered:
        status = "UNKNOWN"
    elif healthy == len(ordered):
        status = "UP"
    elif healthy == 0:
        status = "DOWN"
    else:
        status = "DEGRADED"
    return ClusterHealthSummary(
        status=status,
        total_clusters=len(ordered),
        healthy_clusters=healthy,
        unhealthy_clusters=len(ordered) - healthy,
        clusters=ordered,
    )
