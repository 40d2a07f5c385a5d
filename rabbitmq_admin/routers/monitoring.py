"""Cluster health monitoring – /api/monitoring/* (administrators only)."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from rabbitmq_admin.deps import get_health_service, require_admin
from rabbitmq_admin.models import ClusterHealth, ClusterHealthSummary
from rabbitmq_admin.services.monitoring import ClusterHealthService

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"], dependencies=[Depends(require_admin)])


@router.get("/health/clusters", response_model=ClusterHealthSummary)
async def all_cluster_health(
    monitoring: ClusterHealthService = Depends(get_health_service),
) -> ClusterHealthSummary:
    """Health of every active cluster; recent results are served from cache."""
    return await monitoring.summary()


@router.post("/health/clusters/refresh", response_model=ClusterHealthSummary)
async def refresh_all_cluster_health(
    monitoring: ClusterHealthService = Depends(get_health_service),
) -> ClusterHealthSummary:
    return await monitoring.refresh_all()


@router.get("/health/clusters/{cluster_id}", response_model=ClusterHealth)
async def cluster_health(
    cluster_id: UUID,
    monitoring: ClusterHealthService = Depends(get_health_service),
) -> ClusterHealth:
    return await monitoring.check(cluster_id)


@router.post("/health/clusters/{cluster_id}/refresh", response_model=ClusterHealth)
async def refresh_cluster_health(
    cluster_id: UUID,
    monitoring: ClusterHealthService = Depends(get_health_service),
) -> ClusterHealth:
    return await monitoring.refresh(cluster_id)
