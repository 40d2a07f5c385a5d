"""Audit trail – /api/audits/* (administrators only)."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from rabbitmq_admin.deps import get_audit_service, require_admin
from rabbitmq_admin.entities import AuditOperationStatus, AuditOperationType
from rabbitmq_admin.models import (
    AuditCleanupResponse,
    AuditConfigurationResponse,
    AuditFilter,
    AuditResponse,
    PagedResponse,
)
from rabbitmq_admin.services.audit import AuditService

router = APIRouter(prefix="/api/audits", tags=["audits"], dependencies=[Depends(require_admin)])


@router.get("", response_model=PagedResponse[AuditResponse])
async def list_audits(
    username: str | None = None,
    cluster_name: str | None = Query(None, alias="clusterName"),
    operation_type: AuditOperationType | None = Query(None, alias="operationType"),
    status: AuditOperationStatus | None = None,
    resource_name: str | None = Query(None, alias="resourceName"),
    resource_type: str | None = Query(None, alias="resourceType"),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    sort_by: str = Query("timestamp", alias="sortBy"),
    sort_direction: str = Query("desc", alias="sortDirection"),
    audits: AuditService = Depends(get_audit_service),
) -> PagedResponse[AuditResponse]:
    criteria = AuditFilter(
        username=username,
        cluster_name=cluster_name,
        operation_type=operation_type,
        status=status,
        resource_name=resource_name,
        resource_type=resource_type,
        start_time=start_time,
        end_time=end_time,
    )
    result = await audits.query(criteria, page, page_size, sort_by, sort_direction)
    return PagedResponse[AuditResponse](
        items=[AuditResponse.from_record(r) for r in result.items],
        page=result.page,
        page_size=result.page_size,
        total_items=result.total_items,
        total_pages=result.total_pages,
        has_next=result.has_next,
        has_previous=result.has_previous,
    )


@router.get("/config", response_model=AuditConfigurationResponse)
async def audit_configuration(audits: AuditService = Depends(get_audit_service)) -> AuditConfigurationResponse:
    return audits.configuration()


@router.post("/cleanup", response_model=AuditCleanupResponse)
async def cleanup(
    retention_days: int | None = Query(None, ge=1, alias="retentionDays"),
    audits: AuditService = Depends(get_audit_service),
) -> AuditCleanupResponse:
    """Delete records older than the retention period (or ``retentionDays``)."""
    return AuditCleanupResponse(deleted=await audits.cleanup(retention_days))
