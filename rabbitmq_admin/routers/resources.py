"""RabbitMQ resources – /api/rabbitmq/{cluster_id}/resources/*.

Paginated listings, bindings, and the audited write operations (exchanges,
queues, bindings, publishing and shovels).  ``{vhost}`` path segments are
URL-safe base64; the ``vhost`` query parameter of listings is plain text.
"""

from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from rabbitmq_admin.deps import decode_vhost, get_caller, get_page_request, get_resource_service
from rabbitmq_admin.entities import Caller
from rabbitmq_admin.models import (
    CreateBindingRequest,
    CreateExchangeRequest,
    CreateQueueRequest,
    CreateShovelRequest,
    GetMessagesRequest,
    PagedResponse,
    PageRequest,
    PublishMessageRequest,
    PublishResponse,
)
from rabbitmq_admin.services.resources import ResourceService

router = APIRouter(prefix="/api/rabbitmq/{cluster_id}/resources", tags=["resources"])

Page = PagedResponse[dict[str, Any]]


# ── Listings ──────────────────────────────────────────────────────────────────


@router.get("/connections", response_model=Page)
async def list_connections(
    cluster_id: UUID,
    page: PageRequest = Depends(get_page_request),
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> Page:
    return await resources.list_connections(cluster_id, page, caller)


@router.get("/channels", response_model=Page)
async def list_channels(
    cluster_id: UUID,
    page: PageRequest = Depends(get_page_request),
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> Page:
    return await resources.list_channels(cluster_id, page, caller)


@router.get("/exchanges", response_model=Page)
async def list_exchanges(
    cluster_id: UUID,
    vhost: str | None = Query(None, description="Restrict to one vhost"),
    page: PageRequest = Depends(get_page_request),
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> Page:
    return await resources.list_exchanges(cluster_id, page, caller, vhost=vhost)


@router.get("/queues", response_model=Page)
async def list_queues(
    cluster_id: UUID,
    vhost: str | None = Query(None, description="Restrict to one vhost"),
    page: PageRequest = Depends(get_page_request),
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> Page:
    return await resources.list_queues(cluster_id, page, caller, vhost=vhost)


# ── Bindings (read) ───────────────────────────────────────────────────────────


@router.get("/exchanges/{vhost}/{name}/bindings")
async def exchange_bindings(
    cluster_id: UUID,
    vhost: str,
    name: str,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> list[dict[str, Any]]:
    return await resources.exchange_bindings(cluster_id, decode_vhost(vhost), name, caller)


@router.get("/queues/{vhost}/{name}/bindings")
async def queue_bindings(
    cluster_id: UUID,
    vhost: str,
    name: str,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> list[dict[str, Any]]:
    return await resources.queue_bindings(cluster_id, decode_vhost(vhost), name, caller)


# ── Exchanges ─────────────────────────────────────────────────────────────────


@router.put("/exchanges", status_code=204)
async def create_exchange(
    cluster_id: UUID,
    payload: CreateExchangeRequest,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    await resources.create_exchange(cluster_id, payload, caller)


@router.delete("/exchanges/{vhost}/{name}", status_code=204)
async def delete_exchange(
    cluster_id: UUID,
    vhost: str,
    name: str,
    if_unused: bool = Query(False, alias="ifUnused"),
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    await resources.delete_exchange(cluster_id, decode_vhost(vhost), name, caller, if_unused=if_unused)


@router.post("/exchanges/{vhost}/{name}/publish", response_model=PublishResponse)
async def publish_to_exchange(
    cluster_id: UUID,
    vhost: str,
    name: str,
    payload: PublishMessageRequest,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> PublishResponse:
    routed = await resources.publish_to_exchange(cluster_id, decode_vhost(vhost), name, payload, caller)
    return PublishResponse(routed=routed)


# ── Queues ────────────────────────────────────────────────────────────────────


@router.put("/queues", status_code=204)
async def create_queue(
    cluster_id: UUID,
    payload: CreateQueueRequest,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    await resources.create_queue(cluster_id, payload, caller)


@router.delete("/queues/{vhost}/{name}", status_code=204)
async def delete_queue(
    cluster_id: UUID,
    vhost: str,
    name: str,
    if_empty: bool = Query(False, alias="ifEmpty"),
    if_unused: bool = Query(False, alias="ifUnused"),
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    await resources.delete_queue(
        cluster_id, decode_vhost(vhost), name, caller, if_empty=if_empty, if_unused=if_unused
    )


@router.delete("/queues/{vhost}/{name}/contents", status_code=204)
async def purge_queue(
    cluster_id: UUID,
    vhost: str,
    name: str,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    await resources.purge_queue(cluster_id, decode_vhost(vhost), name, caller)


@router.post("/queues/{vhost}/{name}/publish", response_model=PublishResponse)
async def publish_to_queue(
    cluster_id: UUID,
    vhost: str,
    name: str,
    payload: PublishMessageRequest,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> PublishResponse:
    routed = await resources.publish_to_queue(cluster_id, decode_vhost(vhost), name, payload, caller)
    return PublishResponse(routed=routed)


@router.post("/queues/{vhost}/{name}/get")
async def get_messages(
    cluster_id: UUID,
    vhost: str,
    name: str,
    payload: GetMessagesRequest,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> list[dict[str, Any]]:
    """Fetch messages; with an ``ack_*`` / ``reject_requeue_false`` mode they are consumed."""
    return await resources.get_messages(cluster_id, decode_vhost(vhost), name, payload, caller)


# ── Bindings (write) ──────────────────────────────────────────────────────────


@router.post("/bindings/{vhost}/e/{source}/{destination_type}/{destination}", status_code=201)
async def create_binding(
    cluster_id: UUID,
    vhost: str,
    source: str,
    destination_type: Literal["q", "e"],
    destination: str,
    payload: CreateBindingRequest,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    await resources.create_binding(
        cluster_id, decode_vhost(vhost), source, destination, destination_type, payload, caller
    )


@router.delete(
    "/bindings/{vhost}/e/{source}/{destination_type}/{destination}/{properties_key}",
    status_code=204,
)
async def delete_binding(
    cluster_id: UUID,
    vhost: str,
    source: str,
    destination_type: Literal["q", "e"],
    destination: str,
    properties_key: str,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    await resources.delete_binding(
        cluster_id, decode_vhost(vhost), source, destination, destination_type, properties_key, caller
    )


# ── Shovels ───────────────────────────────────────────────────────────────────


@router.post("/shovels", status_code=201)
async def create_shovel(
    cluster_id: UUID,
    payload: CreateShovelRequest,
    caller: Caller = Depends(get_caller),
    resources: ResourceService = Depends(get_resource_service),
) -> None:
    """Move messages between queues with a dynamic shovel (needs rabbitmq_shovel)."""
    await resources.create_shovel(cluster_id, payload, caller)
