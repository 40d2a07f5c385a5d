"""Cluster-level RabbitMQ reads – /api/rabbitmq/{cluster_id}/*.

Any authenticated user may call these; the proxy enforces cluster assignment.
``{vhost}`` path segments are URL-safe base64 (``Lw==`` is the default ``/``).
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from rabbitmq_admin.deps import decode_vhost, get_caller, get_proxy, get_resource_service
from rabbitmq_admin.entities import Caller
from rabbitmq_admin.models import ConnectivityResponse
from rabbitmq_admin.services.proxy import RabbitMQProxy
from rabbitmq_admin.services.resources import ResourceService

router = APIRouter(prefix="/api/rabbitmq/{cluster_id}", tags=["rabbitmq"])


@router.get("/overview")
async def overview(
    cluster_id: UUID,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> dict[str, Any]:
    return await resources.overview(cluster_id, caller)


@router.get("/nodes")
async def nodes(
    cluster_id: UUID,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> list[dict[str, Any]]:
    return await resources.nodes(cluster_id, caller)


@router.get("/vhosts")
async def vhosts(
    cluster_id: UUID,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> list[dict[str, Any]]:
    return await resources.vhosts(cluster_id, caller)


@router.get("/queues/{vhost}/{name}")
async def queue(
    cluster_id: UUID,
    vhost: str,
    name: str,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> dict[str, Any]:
    return await resources.queue(cluster_id, decode_vhost(vhost), name, caller)


@router.get("/exchanges/{vhost}/{name}")
async def exchange(
    cluster_id: UUID,
    vhost: str,
    name: str,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> dict[str, Any]:
    return await resources.exchange(cluster_id, decode_vhost(vhost), name, caller)


@router.get("/test-connection", response_model=ConnectivityResponse)
async def test_connection(
    cluster_id: UUID,
    caller: Caller = Depends(get_caller),
    proxy: RabbitMQProxy = Depends(get_proxy),
) -> ConnectivityResponse:
    return ConnectivityResponse(connected=await proxy.test_connection(cluster_id, caller.user))


@router.get("/proxy/{path:path}")
async def proxy_get(
    cluster_id: UUID,
    path: str,
    request: Request,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> Any:
    """Read-only passthrough to ``api/{path}`` with the query string forwarded."""
    return await resources.passthrough(cluster_id, path, caller, params=dict(request.query_params) or None)
