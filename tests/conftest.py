"""Shared pytest fixtures and helpers.

The RabbitMQ Management API is replaced by :class:`FakeRabbitMQ`, a scripted
``httpx.MockTransport`` handler, so tests run without a live broker.  Both
JSON stores use ``tmp_path`` for file-system isolation, and FastAPI's
``dependency_overrides`` wires everything into the app.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from rabbitmq_admin.clients.pool import RabbitMQClientPool
from rabbitmq_admin.config import Settings
from rabbitmq_admin.deps import (
    get_audit_store,
    get_client_pool,
    get_health_cache,
    get_settings,
    get_state_store,
)
from rabbitmq_admin.entities import ClusterConnection, User, UserRole
from rabbitmq_admin.main import app
from rabbitmq_admin.models import CreateClusterRequest
from rabbitmq_admin.security import TokenIssuer
from rabbitmq_admin.services.audit import AuditService
from rabbitmq_admin.services.clusters import ClusterService
from rabbitmq_admin.services.monitoring import HealthCache
from rabbitmq_admin.services.proxy import RabbitMQProxy
from rabbitmq_admin.services.users import UserService
from rabbitmq_admin.store import JsonStore

# ── Constants ─────────────────────────────────────────────────────────────────

ADMIN_PASSWORD = "Admin123!"
USER_PASSWORD = "User1234!"
CLUSTER_URL = "http://rabbit.test:15672"
DEFAULT_VHOST = base64.urlsafe_b64encode(b"/").decode()  # "Lw=="


# ── Fake Management API ───────────────────────────────────────────────────────


class FakeRabbitMQ:
    """Scripted RabbitMQ Management API.

    Routes are keyed by ``(method, raw path)`` where the raw path keeps its
    percent-encoding (``/api/queues/%2F/orders``).  Unknown routes answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        json: Any = None,
        status: int = 200,
        raises: type[httpx.HTTPError] | None = None,
        text: str | None = None,
    ) -> None:
        if raises is not None:
            self.routes[(method, path)] = raises
        else:
            self.routes[(method, path)] = (status, json, text)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.raw_path.split(b"?")[0].decode()
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"error": "Object Not Found", "reason": "Not Found"})
        if isinstance(route, type):
            raise route("scripted failure", request=request)
        status, body, text = route
        if text is not None:
            return httpx.Response(status, text=text, headers={"content-type": "text/html"})
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def paths(self) -> list[str]:
        return [r.url.raw_path.decode() for r in self.requests]


def bearer(issuer: TokenIssuer, user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issuer.issue(user)}"}


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        state_store_path=str(tmp_path / "state.json"),
        audit_store_path=str(tmp_path / "audit.json"),
        jwt_secret="test-secret",
        lockout_max_failed_attempts=3,
    )


@pytest.fixture()
def state_store(settings: Settings) -> JsonStore:
    return JsonStore(settings.state_store_path)


@pytest.fixture()
def audit_store(settings: Settings) -> JsonStore:
    return JsonStore(settings.audit_store_path)


@pytest.fixture()
def fake_rabbit() -> FakeRabbitMQ:
    return FakeRabbitMQ()


@pytest.fixture()
def client_pool(fake_rabbit: FakeRabbitMQ) -> RabbitMQClientPool:
    return RabbitMQClientPool(timeout=5, transport=httpx.MockTransport(fake_rabbit.handler))


@pytest.fixture()
def user_service(state_store: JsonStore) -> UserService:
    return UserService(state_store)


@pytest.fixture()
def cluster_service(
    state_store: JsonStore, client_pool: RabbitMQClientPool, settings: Settings
) -> ClusterService:
    return ClusterService(state_store, client_pool, settings)


@pytest.fixture()
def audit_service(audit_store: JsonStore, settings: Settings) -> AuditService:
    return AuditService(audit_store, settings)


@pytest.fixture()
def proxy(cluster_service: ClusterService, client_pool: RabbitMQClientPool) -> RabbitMQProxy:
    return RabbitMQProxy(cluster_service, client_pool)


@pytest.fixture()
def health_cache() -> HealthCache:
    return HealthCache()


@pytest.fixture()
def token_issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer(
        secret=settings.jwt_secret,
        issuer=settings.jwt_issuer,
        access_ttl_seconds=settings.access_token_ttl_minutes * 60,
        refresh_ttl_seconds=settings.refresh_token_ttl_minutes * 60,
    )


# ── Seeded data (synchronous tests only) ──────────────────────────────────────


@pytest.fixture()
def admin_user(user_service: UserService) -> User:
    return asyncio.run(user_service.create_user("admin", ADMIN_PASSWORD, UserRole.ADMINISTRATOR))


@pytest.fixture()
def alice(user_service: UserService) -> User:
    return asyncio.run(user_service.create_user("alice", USER_PASSWORD))


@pytest.fixture()
def bob(user_service: UserService) -> User:
    return asyncio.run(user_service.create_user("bob", USER_PASSWORD))


@pytest.fixture()
def cluster(cluster_service: ClusterService, alice: User) -> ClusterConnection:
    """Active cluster assigned to alice only."""
    return asyncio.run(
        cluster_service.create_cluster(
            CreateClusterRequest(
                name="production",
                api_url=CLUSTER_URL,
                username="guest",
                password="guest-secret",
                description="Main cluster",
                assigned_user_ids={alice.id},
            )
        )
    )


@pytest.fixture()
def admin_headers(token_issuer: TokenIssuer, admin_user: User) -> dict[str, str]:
    return bearer(token_issuer, admin_user)


@pytest.fixture()
def alice_headers(token_issuer: TokenIssuer, alice: User) -> dict[str, str]:
    return bearer(token_issuer, alice)


@pytest.fixture()
def bob_headers(token_issuer: TokenIssuer, bob: User) -> dict[str, str]:
    return bearer(token_issuer, bob)


@pytest.fixture()
def test_client(
    settings: Settings,
    state_store: JsonStore,
    audit_store: JsonStore,
    client_pool: RabbitMQClientPool,
    health_cache: HealthCache,
) -> Iterator[TestClient]:
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_state_store] = lambda: state_store
    app.dependency_overrides[get_audit_store] = lambda: audit_store
    app.dependency_overrides[get_client_pool] = lambda: client_pool
    app.dependency_overrides[get_health_cache] = lambda: health_cache
    yield TestClient(app)
    app.dependency_overrides.clear()
