"""Tests for the audit trail service and /api/audits/*."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from rabbitmq_admin.config import Settings
from rabbitmq_admin.entities import (
    AuditOperationStatus,
    AuditOperationType,
    AuditRecord,
    Caller,
    ClusterConnection,
    User,
    utcnow,
)
from rabbitmq_admin.errors import ValidationFailed
from rabbitmq_admin.main import _audit_retention_loop
from rabbitmq_admin.models import AuditFilter
from rabbitmq_admin.services.audit import AuditService
from rabbitmq_admin.store import JsonStore


def _seed(audit_store: JsonStore, *records: AuditRecord) -> None:
    async def write() -> None:
        async with audit_store.edit() as data:
            data.setdefault("records", []).extend(r.model_dump(mode="json") for r in records)

    asyncio.run(write())


def _record(
    cluster: ClusterConnection,
    username: str,
    operation: AuditOperationType,
    resource_name: str,
    status: AuditOperationStatus = AuditOperationStatus.SUCCESS,
    age: timedelta = timedelta(0),
) -> AuditRecord:
    return AuditRecord(
        username=username,
        cluster_id=cluster.id,
        cluster_name=cluster.name,
        operation_type=operation,
        resource_type="queue" if "QUEUE" in operation.value else "exchange",
        resource_name=resource_name,
        status=status,
        timestamp=utcnow() - age,
    )


@pytest.fixture()
def seeded(audit_store: JsonStore, cluster: ClusterConnection) -> None:
    _seed(
        audit_store,
        _record(cluster, "alice", AuditOperationType.CREATE_QUEUE, "orders", age=timedelta(hours=3)),
        _record(cluster, "bob", AuditOperationType.DELETE_EXCHANGE, "events", AuditOperationStatus.FAILURE,
                age=timedelta(hours=2)),
        _record(cluster, "alice", AuditOperationType.PURGE_QUEUE, "invoices", age=timedelta(hours=1)),
    )


# ── HTTP ──────────────────────────────────────────────────────────────────────


def test_regular_user_cannot_read_audits(test_client: TestClient, alice_headers: dict[str, str]) -> None:
    assert test_client.get("/api/audits", headers=alice_headers).status_code == 403


def test_default_listing_newest_first(
    test_client: TestClient, admin_headers: dict[str, str], seeded: None
) -> None:
    resp = test_client.get("/api/audits", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert [r["resourceName"] for r in data["items"]] == ["invoices", "events", "orders"]
    assert data["totalItems"] == 3
    assert data["page"] == 1
    assert data["items"][0]["operationType"] == "PURGE_QUEUE"


def test_filter_by_username_and_status(
    test_client: TestClient, admin_headers: dict[str, str], seeded: None
) -> None:
    alice = test_client.get("/api/audits", params={"username": "ALI"}, headers=admin_headers).json()
    assert {r["resourceName"] for r in alice["items"]} == {"orders", "invoices"}

    failed = test_client.get("/api/audits", params={"status": "FAILURE"}, headers=admin_headers).json()
    assert [r["username"] for r in failed["items"]] == ["bob"]


def test_filter_by_operation_type(
    test_client: TestClient, admin_headers: dict[str, str], seeded: None
) -> None:
    resp = test_client.get("/api/audits", params={"operationType": "CREATE_QUEUE"}, headers=admin_headers)
    assert [r["resourceName"] for r in resp.json()["items"]] == ["orders"]


def test_filter_by_time_window(
    test_client: TestClient, admin_headers: dict[str, str], seeded: None
) -> None:
    start = (utcnow() - timedelta(minutes=150)).isoformat()
    resp = test_client.get("/api/audits", params={"startTime": start}, headers=admin_headers)
    assert {r["resourceName"] for r in resp.json()["items"]} == {"events", "invoices"}


def test_inverted_time_window_rejected(test_client: TestClient, admin_headers: dict[str, str]) -> None:
    now = utcnow()
    resp = test_client.get(
        "/api/audits",
        params={"startTime": now.isoformat(), "endTime": (now - timedelta(hours=1)).isoformat()},
        headers=admin_headers,
    )
    assert resp.status_code == 400


def test_sort_by_username_ascending(
    test_client: TestClient, admin_headers: dict[str, str], seeded: None
) -> None:
    resp = test_client.get(
        "/api/audits", params={"sortBy": "username", "sortDirection": "asc"}, headers=admin_headers
    )
    assert [r["username"] for r in resp.json()["items"]] == ["alice", "alice", "bob"]


def test_invalid_sort_field(test_client: TestClient, admin_headers: dict[str, str]) -> None:
    resp = test_client.get("/api/audits", params={"sortBy": "password"}, headers=admin_headers)
    assert resp.status_code == 400
    assert "Invalid sort field" in resp.json()["detail"]


def test_paging(test_client: TestClient, admin_headers: dict[str, str], seeded: None) -> None:
    data = test_client.get("/api/audits", params={"page": 2, "pageSize": 2}, headers=admin_headers).json()
    assert [r["resourceName"] for r in data["items"]] == ["orders"]
    assert data["totalPages"] == 2
    assert data["hasPrevious"] is True
    assert data["hasNext"] is False


def test_configuration(test_client: TestClient, admin_headers: dict[str, str]) -> None:
    assert test_client.get("/api/audits/config", headers=admin_headers).json() == {
        "writeOperationsEnabled": True,
        "retentionEnabled": True,
        "retentionDays": 90,
        "retentionIntervalHours": 24.0,
    }


def test_cleanup_with_explicit_retention(
    test_client: TestClient, admin_headers: dict[str, str], audit_store: JsonStore, cluster: ClusterConnection
) -> None:
    _seed(
        audit_store,
        _record(cluster, "alice", AuditOperationType.CREATE_QUEUE, "old", age=timedelta(days=10)),
        _record(cluster, "alice", AuditOperationType.CREATE_QUEUE, "new"),
    )
    resp = test_client.post("/api/audits/cleanup", params={"retentionDays": 7}, headers=admin_headers)
    assert resp.json() == {"deleted": 1}
    remaining = test_client.get("/api/audits", headers=admin_headers).json()["items"]
    assert [r["resourceName"] for r in remaining] == ["new"]


# ── Service ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_disabled_recording_writes_nothing(audit_store: JsonStore, settings: Settings) -> None:
    settings.audit_write_operations_enabled = False
    service = AuditService(audit_store, settings)
    user = User(username="alice", password_hash="x")
    cluster = ClusterConnection(name="c", api_url="http://c:15672", username="u", password="p")
    result = await service.record(
        Caller(user=user, client_ip=None, user_agent=None),
        cluster,
        AuditOperationType.CREATE_QUEUE,
        "queue",
        "orders",
        AuditOperationStatus.SUCCESS,
    )
    assert result is None
    assert await service.list_records() == []


@pytest.mark.asyncio
async def test_record_captures_caller(audit_service: AuditService) -> None:
    user = User(username="alice", password_hash="x")
    cluster = ClusterConnection(name="c", api_url="http://c:15672", username="u", password="p")
    await audit_service.record(
        Caller(user=user, client_ip="10.1.2.3", user_agent="curl/8"),
        cluster,
        AuditOperationType.DELETE_QUEUE,
        "queue",
        "orders",
        AuditOperationStatus.FAILURE,
        error_message="boom",
    )
    [stored] = await audit_service.list_records()
    assert stored.client_ip == "10.1.2.3"
    assert stored.user_agent == "curl/8"
    assert stored.error_message == "boom"
    assert stored.cluster_name == "c"


@pytest.mark.asyncio
async def test_cleanup_rejects_non_positive_retention(audit_service: AuditService) -> None:
    with pytest.raises(ValidationFailed):
        await audit_service.cleanup(0)


@pytest.mark.asyncio
async def test_naive_query_times_are_utc(audit_service: AuditService) -> None:
    naive_now = utcnow().replace(tzinfo=None)
    page = await audit_service.query(AuditFilter(start_time=naive_now - timedelta(hours=1), end_time=naive_now))
    assert page.total_items == 0


# ── Scheduled retention ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retention_loop_survives_failed_cleanup() -> None:
    service = MagicMock(spec=AuditService)
    service.cleanup = AsyncMock(side_effect=[ValueError("corrupt audit document"), 3, asyncio.CancelledError()])

    with pytest.raises(asyncio.CancelledError):
        await _audit_retention_loop(service, 0)
    assert service.cleanup.await_count == 3


@pytest.mark.asyncio
async def test_cleanup_of_unreadable_document_raises(audit_store: JsonStore, settings: Settings) -> None:
    audit_store.path.write_text("{not json")
    with pytest.raises(ValueError):
        await AuditService(audit_store, settings).cleanup(7)
