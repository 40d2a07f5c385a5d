"""Audit trail of write operations against RabbitMQ clusters."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from rabbitmq_admin.config import Settings
from rabbitmq_admin.entities import (
    AuditOperationStatus,
    AuditOperationType,
    AuditRecord,
    Caller,
    ClusterConnection,
    utcnow,
)
from rabbitmq_admin.errors import ValidationFailed
from rabbitmq_admin.models import AuditConfigurationResponse, AuditFilter, PagedResponse
from rabbitmq_admin.pagination import paginate
from rabbitmq_admin.store import JsonStore

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "timestamp": "timestamp",
    "username": "username",
    "clusterName": "cluster_name",
    "operationType": "operation_type",
    "resourceType": "resource_type",
    "resourceName": "resource_name",
    "status": "status",
}


class AuditService:
    def __init__(self, store: JsonStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return self._settings.audit_write_operations_enabled

    async def record(
        self,
        caller: Caller,
        cluster: ClusterConnection,
        operation: AuditOperationType,
        resource_type: str,
        resource_name: str,
        status: AuditOperationStatus,
        *,
        details: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> AuditRecord | None:
        """Persist one audit entry.

        A storage failure is logged, not raised; the upstream call already happened.
        """
        if not self.enabled:
            return None
        record = AuditRecord(
            username=caller.user.username,
            cluster_id=cluster.id,
            cluster_name=cluster.name,
            operation_type=operation,
            resource_type=resource_type,
            resource_name=resource_name,
            resource_details=details,
            status=status,
            error_message=error_message,
            client_ip=caller.client_ip,
            user_agent=caller.user_agent,
        )
        try:
            async with self._store.edit() as data:
                data.setdefault("records", []).append(record.model_dump(mode="json"))
        except Exception:
            logger.exception("Could not persist audit record for %s on '%s'", operation.value, resource_name)
            return None
        logger.info(
            "AUDIT %s %s %s '%s' on cluster '%s' by '%s'",
            status.value,
            operation.value,
            resource_type,
            resource_name,
            cluster.name,
            caller.user.username,
        )
        return record

    async def list_records(self) -> list[AuditRecord]:
        data = await self._store.load()
        return [AuditRecord.model_validate(raw) for raw in data.get("records", [])]

    async def query(
        self,
        criteria: AuditFilter,
        page: int = 1,
        page_size: int = 50,
        sort_by: str = "timestamp",
        sort_direction: str = "desc",
    ) -> PagedResponse[AuditRecord]:
        if sort_by not in SORT_FIELDS:
            raise ValidationFailed(
                f"Invalid sort field '{sort_by}'. Allowed: {', '.join(sorted(SORT_FIELDS))}"
            )
        if sort_direction.lower() not in ("asc", "desc"):
            raise ValidationFailed("sortDirection must be 'asc' or 'desc'")
        criteria = criteria.model_copy(
            update={"start_time": _as_utc(criteria.start_time), "end_time": _as_utc(criteria.end_time)}
        )
        if criteria.start_time and criteria.end_time and criteria.start_time > criteria.end_time:
            raise ValidationFailed("startTime must be before endTime")

        records = [r for r in await self.list_records() if _matches(r, criteria)]
        attr = SORT_FIELDS[sort_by]
        records.sort(
            key=lambda r: _sort_key(getattr(r, attr)),
            reverse=sort_direction.lower() == "desc",
        )
        return paginate(records, page, page_size)

    async def cleanup(self, retention_days: int | None = None) -> int:
        """Delete records older than *retention_days*; return how many were removed."""
        days = self._settings.audit_retention_days if retention_days is None else retention_days
        if days < 1:
            raise ValidationFailed("Retention days must be at least 1")
        cutoff = utcnow() - timedelta(days=days)
        async with self._store.edit() as data:
            records = data.get("records", [])
            kept = [raw for raw in records if AuditRecord.model_validate(raw).timestamp >= cutoff]
            data["records"] = kept
        deleted = len(records) - len(kept)
        logger.info("Audit retention removed %d record(s) older than %d day(s)", deleted, days)
        return deleted

    def configuration(self) -> AuditConfigurationResponse:
        return AuditConfigurationResponse(
            write_operations_enabled=self._settings.audit_write_operations_enabled,
            retention_enabled=self._settings.audit_retention_enabled,
            retention_days=self._settings.audit_retention_days,
            retention_interval_hours=self._settings.audit_retention_interval_hours,
        )


def _contains(value: str | None, needle: str | None) -> bool:
    return not needle or (value is not None and needle.casefold() in value.casefold())


def _matches(record: AuditRecord, criteria: AuditFilter) -> bool:
    if not _contains(record.username, criteria.username):
        return False
    if not _contains(record.cluster_name, criteria.cluster_name):
        return False
    if not _contains(record.resource_name, criteria.resource_name):
        return False
    if criteria.resource_type and record.resource_type.casefold() != criteria.resource_type.casefold():
        return False
    if criteria.operation_type and record.operation_type is not criteria.operation_type:
        return False
    if criteria.status and record.status is not criteria.status:
        return False
    if criteria.start_time and record.timestamp < criteria.start_time:
        return False
    if criteria.end_time and record.timestamp > criteria.end_time:
        return False
    return True


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        return value.casefold()
    return value


def _as_utc(value: datetime | None) -> datetime | None:
    """Query timestamps without an offset are taken as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
