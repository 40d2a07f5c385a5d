"""Cluster connection management – /api/clusters/*.

Everything is administrator-only except ``/my`` and ``/my/active``, which list
the clusters available to the calling user.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from rabbitmq_admin.deps import get_cluster_service, get_current_user, require_admin
from rabbitmq_admin.entities import ClusterConnection, User
from rabbitmq_admin.models import (
    ClusterResponse,
    ConnectionTestRequest,
    ConnectionTestResponse,
    CreateClusterRequest,
    NameExistsResponse,
    UpdateClusterRequest,
    UserResponse,
)
from rabbitmq_admin.services.clusters import ClusterService

router = APIRouter(prefix="/api/clusters", tags=["clusters"])

admin_only = [Depends(require_admin)]


async def _respond(clusters: ClusterService, cluster: ClusterConnection) -> ClusterResponse:
    return ClusterResponse.from_cluster(cluster, await clusters.assigned_users(cluster.id))


# ── Current user ──────────────────────────────────────────────────────────────


@router.get("/my", response_model=list[ClusterResponse])
async def my_clusters(
    user: User = Depends(get_current_user),
    clusters: ClusterService = Depends(get_cluster_service),
) -> list[ClusterResponse]:
    return [ClusterResponse.from_cluster(c) for c in await clusters.accessible_clusters(user)]


@router.get("/my/active", response_model=list[ClusterResponse])
async def my_active_clusters(
    user: User = Depends(get_current_user),
    clusters: ClusterService = Depends(get_cluster_service),
) -> list[ClusterResponse]:
    return [
        ClusterResponse.from_cluster(c)
        for c in await clusters.accessible_clusters(user, active_only=True)
    ]


# ── Administration ────────────────────────────────────────────────────────────


@router.get("", response_model=list[ClusterResponse], dependencies=admin_only)
async def list_clusters(clusters: ClusterService = Depends(get_cluster_service)) -> list[ClusterResponse]:
    return [await _respond(clusters, c) for c in await clusters.list_clusters()]


@router.get("/active", response_model=list[ClusterResponse], dependencies=admin_only)
async def list_active_clusters(
    clusters: ClusterService = Depends(get_cluster_service),
) -> list[ClusterResponse]:
    return [await _respond(clusters, c) for c in await clusters.list_clusters(active_only=True)]


@router.post("", response_model=ClusterResponse, status_code=201, dependencies=admin_only)
async def create_cluster(
    payload: CreateClusterRequest,
    clusters: ClusterService = Depends(get_cluster_service),
) -> ClusterResponse:
    return await _respond(clusters, await clusters.create_cluster(payload))


@router.post("/test", response_model=ConnectionTestResponse, dependencies=admin_only)
async def test_connection(
    payload: ConnectionTestRequest,
    clusters: ClusterService = Depends(get_cluster_service),
) -> ConnectionTestResponse:
    """Try credentials before saving them.  Always 200; see ``successful``."""
    return await clusters.test_connection(payload.api_url, payload.username, payload.password)


@router.get("/exists/{name}", response_model=NameExistsResponse, dependencies=admin_only)
async def name_exists(name: str, clusters: ClusterService = Depends(get_cluster_service)) -> NameExistsResponse:
    return NameExistsResponse(exists=await clusters.name_exists(name))


@router.get("/by-user/{user_id}", response_model=list[ClusterResponse], dependencies=admin_only)
async def clusters_by_user(
    user_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> list[ClusterResponse]:
    return [await _respond(clusters, c) for c in await clusters.clusters_for_user(user_id)]


@router.get("/by-user/{user_id}/active", response_model=list[ClusterResponse], dependencies=admin_only)
async def active_clusters_by_user(
    user_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> list[ClusterResponse]:
    return [
        await _respond(clusters, c)
        for c in await clusters.clusters_for_user(user_id, active_only=True)
    ]


@router.get("/{cluster_id}", response_model=ClusterResponse, dependencies=admin_only)
async def get_cluster(
    cluster_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> ClusterResponse:
    return await _respond(clusters, await clusters.get_cluster(cluster_id))


@router.put("/{cluster_id}", response_model=ClusterResponse, dependencies=admin_only)
async def update_cluster(
    cluster_id: UUID,
    payload: UpdateClusterRequest,
    clusters: ClusterService = Depends(get_cluster_service),
) -> ClusterResponse:
    return await _respond(clusters, await clusters.update_cluster(cluster_id, payload))


@router.delete("/{cluster_id}", status_code=204, dependencies=admin_only)
async def delete_cluster(cluster_id: UUID, clusters: ClusterService = Depends(get_cluster_service)) -> None:
    await clusters.delete_cluster(cluster_id)


@router.post("/{cluster_id}/test", response_model=ConnectionTestResponse, dependencies=admin_only)
async def test_cluster(
    cluster_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> ConnectionTestResponse:
    return await clusters.test_cluster(cluster_id)


# ── Assignments ───────────────────────────────────────────────────────────────


@router.get("/{cluster_id}/users", response_model=list[UserResponse], dependencies=admin_only)
async def assigned_users(
    cluster_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in await clusters.assigned_users(cluster_id)]


@router.get("/{cluster_id}/users/unassigned", response_model=list[UserResponse], dependencies=admin_only)
async def unassigned_users(
    cluster_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in await clusters.unassigned_users(cluster_id)]


@router.post("/{cluster_id}/users/{user_id}", response_model=ClusterResponse, dependencies=admin_only)
async def assign_user(
    cluster_id: UUID,
    user_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> ClusterResponse:
    return await _respond(clusters, await clusters.assign_user(cluster_id, user_id))


@router.delete("/{cluster_id}/users/{user_id}", response_model=ClusterResponse, dependencies=admin_only)
async def unassign_user(
    cluster_id: UUID,
    user_id: UUID,
    clusters: ClusterService = Depends(get_cluster_service),
) -> ClusterResponse:
    return await _respond(clusters, await clusters.unassign_user(cluster_id, user_id))
