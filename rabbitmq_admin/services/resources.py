"""RabbitMQ resource operations: paginated listings, bindings and audited writes.

Upstream paths follow the Management API layout (``api/queues/{vhost}/{name}``
etc.); every vhost and resource name is percent-encoded with ``enc`` so the
default vhost ``/`` travels as ``%2F``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

from rabbitmq_admin.clients.rabbitmq import RabbitMQError, UpstreamNotFoundError, enc
from rabbitmq_admin.entities import AuditOperationStatus, AuditOperationType, Caller, ClusterConnection
from rabbitmq_admin.errors import AdminError
from rabbitmq_admin.models import (
    CreateBindingRequest,
    CreateExchangeRequest,
    CreateQueueRequest,
    CreateShovelRequest,
    GetMessagesRequest,
    PagedResponse,
    PageRequest,
    PublishMessageRequest,
)
from rabbitmq_admin.pagination import paginate_by_name
from rabbitmq_admin.services.audit import AuditService
from rabbitmq_admin.services.proxy import RabbitMQProxy

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_EXCHANGE = "amq.default"


class ShovelPluginUnavailable(RabbitMQError):
    status_code = 503
    title = "Shovel Plugin Unavailable"


class ResourceService:
    def __init__(self, proxy: RabbitMQProxy, audit: AuditService) -> None:
        self._proxy = proxy
        self._audit = audit

    # ── Cluster-level reads ──────────────────────────────────────────────────

    async def overview(self, cluster_id: UUID, caller: Caller) -> dict[str, Any]:
        return await self._read(cluster_id, caller, "overview", "api/overview")

    async def nodes(self, cluster_id: UUID, caller: Caller) -> list[dict[str, Any]]:
        return await self._read(cluster_id, caller, "nodes", "api/nodes")

    async def vhosts(self, cluster_id: UUID, caller: Caller) -> list[dict[str, Any]]:
        return await self._read(cluster_id, caller, "vhosts", "api/vhosts")

    async def queue(self, cluster_id: UUID, vhost: str, name: str, caller: Caller) -> dict[str, Any]:
        return await self._read(cluster_id, caller, "queue", f"api/queues/{enc(vhost)}/{enc(name)}")

    async def exchange(self, cluster_id: UUID, vhost: str, name: str, caller: Caller) -> dict[str, Any]:
        return await self._read(cluster_id, caller, "exchange", f"api/exchanges/{enc(vhost)}/{enc(name)}")

    async def passthrough(
        self, cluster_id: UUID, path: str, caller: Caller, params: dict[str, Any] | None = None
    ) -> Any:
        """Read-only GET of an arbitrary ``api/...`` path."""
        return await self._read(cluster_id, caller, "proxy", f"api/{path.lstrip('/')}", params=params)

    # ── Paginated listings ───────────────────────────────────────────────────

    async def list_connections(
        self, cluster_id: UUID, page: PageRequest, caller: Caller
    ) -> PagedResponse[dict[str, Any]]:
        items = await self._read(cluster_id, caller, "connections", "api/connections")
        return paginate_by_name(items or [], page)

    async def list_channels(
        self, cluster_id: UUID, page: PageRequest, caller: Caller
    ) -> PagedResponse[dict[str, Any]]:
        items = await self._read(cluster_id, caller, "channels", "api/channels")
        return paginate_by_name(items or [], page)

    async def list_exchanges(
        self, cluster_id: UUID, page: PageRequest, caller: Caller, vhost: str | None = None
    ) -> PagedResponse[dict[str, Any]]:
        path = f"api/exchanges/{enc(vhost)}" if vhost else "api/exchanges"
        items = await self._read(cluster_id, caller, "exchanges", path)
        return paginate_by_name(items or [], page)

    async def list_queues(
        self, cluster_id: UUID, page: PageRequest, caller: Caller, vhost: str | None = None
    ) -> PagedResponse[dict[str, Any]]:
        path = f"api/queues/{enc(vhost)}" if vhost else "api/queues"
        items = await self._read(cluster_id, caller, "queues", path)
        return paginate_by_name(items or [], page)

    # ── Bindings ─────────────────────────────────────────────────────────────

    async def exchange_bindings(
        self, cluster_id: UUID, vhost: str, exchange: str, caller: Caller
    ) -> list[dict[str, Any]]:
        """Bindings where *exchange* is the source."""
        path = f"api/exchanges/{enc(vhost)}/{enc(exchange)}/bindings/source"
        return await self._read(cluster_id, caller, "exchange bindings", path) or []

    async def queue_bindings(
        self, cluster_id: UUID, vhost: str, queue: str, caller: Caller
    ) -> list[dict[str, Any]]:
        path = f"api/queues/{enc(vhost)}/{enc(queue)}/bindings"
        return await self._read(cluster_id, caller, "queue bindings", path) or []

    # ── Exchanges ────────────────────────────────────────────────────────────

    async def create_exchange(self, cluster_id: UUID, request: CreateExchangeRequest, caller: Caller) -> None:
        body = {
            "type": request.type,
            "durable": request.durable,
            "auto_delete": request.auto_delete,
            "internal": request.internal,
            "arguments": request.arguments,
        }
        path = f"api/exchanges/{enc(request.vhost)}/{enc(request.name)}"
        await self._write(
            cluster_id,
            caller,
            AuditOperationType.CREATE_EXCHANGE,
            "exchange",
            request.name,
            {"vhost": request.vhost, **body},
            lambda cluster: self._proxy.send(cluster, "PUT", path, json=body),
        )

    async def delete_exchange(
        self, cluster_id: UUID, vhost: str, name: str, caller: Caller, if_unused: bool = False
    ) -> None:
        path = f"api/exchanges/{enc(vhost)}/{enc(name)}"
        params = {"if-unused": "true"} if if_unused else None
        await self._write(
            cluster_id,
            caller,
            AuditOperationType.DELETE_EXCHANGE,
            "exchange",
            name,
            {"vhost": vhost, "ifUnused": if_unused},
            lambda cluster: self._proxy.send(cluster, "DELETE", path, params=params),
        )

    # ── Queues ───────────────────────────────────────────────────────────────

    async def create_queue(self, cluster_id: UUID, request: CreateQueueRequest, caller: Caller) -> None:
        body: dict[str, Any] = {
            "durable": request.durable,
            "auto_delete": request.auto_delete,
            "exclusive": request.exclusive,
            "arguments": request.arguments,
        }
        if request.node:
            body["node"] = request.node
        path = f"api/queues/{enc(request.vhost)}/{enc(request.name)}"
        await self._write(
            cluster_id,
            caller,
            AuditOperationType.CREATE_QUEUE,
            "queue",
            request.name,
            {"vhost": request.vhost, **body},
            lambda cluster: self._proxy.send(cluster, "PUT", path, json=body),
        )

    async def delete_queue(
        self,
        cluster_id: UUID,
        vhost: str,
        name: str,
        caller: Caller,
        if_empty: bool = False,
        if_unused: bool = False,
    ) -> None:
        path = f"api/queues/{enc(vhost)}/{enc(name)}"
        params = {}
        if if_empty:
            params["if-empty"] = "true"
        if if_unused:
            params["if-unused"] = "true"
        await self._write(
            cluster_id,
            caller,
            AuditOperationType.DELETE_QUEUE,
            "queue",
            name,
            {"vhost": vhost, "ifEmpty": if_empty, "ifUnused": if_unused},
            lambda cluster: self._proxy.send(cluster, "DELETE", path, params=params or None),
        )

    async def purge_queue(self, cluster_id: UUID, vhost: str, name: str, caller: Caller) -> None:
        path = f"api/queues/{enc(vhost)}/{enc(name)}/contents"
        await self._write(
            cluster_id,
            caller,
            AuditOperationType.PURGE_QUEUE,
            "queue",
            name,
            {"vhost": vhost},
            lambda cluster: self._proxy.send(cluster, "DELETE", path),
        )

    # ── Bindings (write) ─────────────────────────────────────────────────────

    async def create_binding(
        self,
        cluster_id: UUID,
        vhost: str,
        source: str,
        destination: str,
        destination_type: str,
        request: CreateBindingRequest,
        caller: Caller,
    ) -> None:
        """Bind *source* exchange to a queue (``q``) or exchange (``e``)."""
        operation = (
            AuditOperationType.CREATE_BINDING_QUEUE
            if destination_type == "q"
            else AuditOperationType.CREATE_BINDING_EXCHANGE
        )
        path = f"api/bindings/{enc(vhost)}/e/{enc(source)}/{destination_type}/{enc(destination)}"
        body = {"routing_key": request.routing_key, "arguments": request.arguments}
        await self._write(
            cluster_id,
            caller,
            operation,
            "binding",
            f"{source} -> {destination}",
            {
                "vhost": vhost,
                "source": source,
                "destination": destination,
                "destinationType": destination_type,
                "routingKey": request.routing_key,
            },
            lambda cluster: self._proxy.send(cluster, "POST", path, json=body),
        )

    async def delete_binding(
        self,
        cluster_id: UUID,
        vhost: str,
        source: str,
        destination: str,
        destination_type: str,
        properties_key: str,
        caller: Caller,
    ) -> None:
        path = (
            f"api/bindings/{enc(vhost)}/e/{enc(source)}/{destination_type}/"
            f"{enc(destination)}/{enc(properties_key)}"
        )
        await self._write(
            cluster_id,
            caller,
            AuditOperationType.DELETE_BINDING,
            "binding",
            f"{source} -> {destination}",
            {
                "vhost": vhost,
                "source": source,
                "destination": destination,
                "destinationType": destination_type,
                "propertiesKey": properties_key,
            },
            lambda cluster: self._proxy.send(cluster, "DELETE", path),
        )

    # ── Messages ─────────────────────────────────────────────────────────────

    async def publish_to_exchange(
        self,
        cluster_id: UUID,
        vhost: str,
        exchange: str,
        request: PublishMessageRequest,
        caller: Caller,
    ) -> bool:
        """Publish one message; return whether RabbitMQ routed it to any queue."""
        return await self._publish(
            cluster_id,
            vhost,
            exchange or DEFAULT_EXCHANGE,
            request,
            caller,
            AuditOperationType.PUBLISH_MESSAGE_EXCHANGE,
            "exchange",
            exchange or DEFAULT_EXCHANGE,
        )

    async def publish_to_queue(
        self,
        cluster_id: UUID,
        vhost: str,
        queue: str,
        request: PublishMessageRequest,
        caller: Caller,
    ) -> bool:
        """Publish through the default exchange with the queue name as routing key."""
        routed = request.model_copy(update={"routing_key": queue})
        return await self._publish(
            cluster_id,
            vhost,
            DEFAULT_EXCHANGE,
            routed,
            caller,
            AuditOperationType.PUBLISH_MESSAGE_QUEUE,
            "queue",
            queue,
        )

    async def get_messages(
        self,
        cluster_id: UUID,
        vhost: str,
        queue: str,
        request: GetMessagesRequest,
        caller: Caller,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {
            "count": request.count,
            "ackmode": request.ackmode,
            "encoding": request.encoding,
        }
        if request.truncate is not None:
            body["truncate"] = request.truncate
        path = f"api/queues/{enc(vhost)}/{enc(queue)}/get"
        self._log_access(cluster_id, caller, "messages", f"{vhost}/{queue}")
        return await self._proxy.post(cluster_id, path, caller.user, json=body) or []

    # ── Shovels ──────────────────────────────────────────────────────────────

    async def create_shovel(self, cluster_id: UUID, request: CreateShovelRequest, caller: Caller) -> None:
        """Create a dynamic shovel moving messages between two queues."""
        value = {
            "src-protocol": "amqp091",
            "src-uri": request.source_uri,
            "src-queue": request.source_queue,
            "dest-protocol": "amqp091",
            "dest-uri": request.destination_uri,
            "dest-queue": request.destination_queue,
            "src-delete-after": request.delete_after,
            "ack-mode": request.ack_mode,
        }
        path = f"api/parameters/shovel/{enc(request.vhost)}/{enc(request.name)}"

        async def call(cluster: ClusterConnection) -> Any:
            try:
                return await self._proxy.send(cluster, "PUT", path, json={"value": value})
            except UpstreamNotFoundError as exc:
                raise ShovelPluginUnavailable(
                    "Shovel plugin is not enabled on the RabbitMQ cluster", details=exc.details
                ) from exc

        await self._write(
            cluster_id,
            caller,
            AuditOperationType.MOVE_MESSAGES_QUEUE,
            "queue",
            request.source_queue,
            {"vhost": request.vhost, "shovel": request.name, **value},
            call,
        )

    # ── Internal helpers ─────────────────────────────────────────────────────

    async def _publish(
        self,
        cluster_id: UUID,
        vhost: str,
        exchange: str,
        request: PublishMessageRequest,
        caller: Caller,
        operation: AuditOperationType,
        resource_type: str,
        resource_name: str,
    ) -> bool:
        body = {
            "properties": request.properties,
            "routing_key": request.routing_key,
            "payload": request.payload,
            "payload_encoding": request.payload_encoding,
        }
        path = f"api/exchanges/{enc(vhost)}/{enc(exchange)}/publish"
        result = await self._write(
            cluster_id,
            caller,
            operation,
            resource_type,
            resource_name,
            {
                "vhost": vhost,
                "exchange": exchange,
                "routingKey": request.routing_key,
                "payloadEncoding": request.payload_encoding,
                "payloadSize": len(request.payload),
            },
            lambda cluster: self._proxy.send(cluster, "POST", path, json=body),
        )
        return bool((result or {}).get("routed", False))

    async def _read(
        self,
        cluster_id: UUID,
        caller: Caller,
        resource: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        self._log_access(cluster_id, caller, resource, path)
        return await self._proxy.get(cluster_id, path, caller.user, params=params)

    async def _write(
        self,
        cluster_id: UUID,
        caller: Caller,
        operation: AuditOperationType,
        resource_type: str,
        resource_name: str,
        details: dict[str, Any],
        call: Callable[[ClusterConnection], Awaitable[T]],
    ) -> T:
        """Run *call* on the authorized cluster and record the outcome in the audit trail.

        Authorization failures are raised before anything is recorded.
        """
        cluster = await self._proxy.authorize(cluster_id, caller.user)
        try:
            result = await call(cluster)
        except AdminError as exc:
            await self._record(caller, cluster, operation, resource_type, resource_name, details, exc)
            raise
        await self._record(caller, cluster, operation, resource_type, resource_name, details)
        return result

    async def _record(
        self,
        caller: Caller,
        cluster: ClusterConnection,
        operation: AuditOperationType,
        resource_type: str,
        resource_name: str,
        details: dict[str, Any],
        error: AdminError | None = None,
    ) -> None:
        await self._audit.record(
            caller,
            cluster,
            operation,
            resource_type,
            resource_name,
            AuditOperationStatus.FAILURE if error else AuditOperationStatus.SUCCESS,
            details=details,
            error_message=error.message if error else None,
        )

    @staticmethod
    def _log_access(cluster_id: UUID, caller: Caller, resource: str, path: str) -> None:
        logger.info(
            "User '%s' read %s (%s) on cluster %s", caller.user.username, resource, path, cluster_id
        )
