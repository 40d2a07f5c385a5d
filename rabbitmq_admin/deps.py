"""FastAPI dependency providers.

Process-wide singletons (settings, JSON stores, client pool, health cache) are
cached here; services are assembled per request and injected via ``Depends``.
Tests override these functions via ``app.dependency_overrides``.
"""

import base64
from functools import lru_cache

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rabbitmq_admin.clients.pool import RabbitMQClientPool
from rabbitmq_admin.config import Settings
from rabbitmq_admin.entities import Caller, User
from rabbitmq_admin.errors import AccessDenied, AuthenticationFailed, ValidationFailed
from rabbitmq_admin.models import PageRequest
from rabbitmq_admin.security import TokenIssuer
from rabbitmq_admin.services.audit import AuditService
from rabbitmq_admin.services.auth import AuthService
from rabbitmq_admin.services.clusters import ClusterService
from rabbitmq_admin.services.monitoring import ClusterHealthService, HealthCache
from rabbitmq_admin.services.proxy import RabbitMQProxy
from rabbitmq_admin.services.resources import ResourceService
from rabbitmq_admin.services.users import UserService
from rabbitmq_admin.store import JsonStore

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@lru_cache(maxsize=1)
def get_state_store() -> JsonStore:
    return JsonStore(get_settings().state_store_path)


@lru_cache(maxsize=1)
def get_audit_store() -> JsonStore:
    return JsonStore(get_settings().audit_store_path)


@lru_cache(maxsize=1)
def get_client_pool() -> RabbitMQClientPool:
    settings = get_settings()
    return RabbitMQClientPool(
        timeout=settings.rabbitmq_request_timeout,
        verify_tls=settings.rabbitmq_verify_tls,
    )


@lru_cache(maxsize=1)
def get_health_cache() -> HealthCache:
    return HealthCache()


# ── Services ──────────────────────────────────────────────────────────────────


def get_token_issuer(settings: Settings = Depends(get_settings)) -> TokenIssuer:
    return TokenIssuer(
        secret=settings.jwt_secret,
        issuer=settings.jwt_issuer,
        access_ttl_seconds=settings.access_token_ttl_minutes * 60,
        refresh_ttl_seconds=settings.refresh_token_ttl_minutes * 60,
    )


def get_user_service(store: JsonStore = Depends(get_state_store)) -> UserService:
    return UserService(store)


def get_auth_service(
    users: UserService = Depends(get_user_service),
    tokens: TokenIssuer = Depends(get_token_issuer),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(users, tokens, settings)


def get_cluster_service(
    store: JsonStore = Depends(get_state_store),
    pool: RabbitMQClientPool = Depends(get_client_pool),
    settings: Settings = Depends(get_settings),
) -> ClusterService:
    return ClusterService(store, pool, settings)


def get_audit_service(
    store: JsonStore = Depends(get_audit_store),
    settings: Settings = Depends(get_settings),
) -> AuditService:
    return AuditService(store, settings)


def get_proxy(
    clusters: ClusterService = Depends(get_cluster_service),
    pool: RabbitMQClientPool = Depends(get_client_pool),
) -> RabbitMQProxy:
    return RabbitMQProxy(clusters, pool)


def get_resource_service(
    proxy: RabbitMQProxy = Depends(get_proxy),
    audit: AuditService = Depends(get_audit_service),
) -> ResourceService:
    return ResourceService(proxy, audit)



def get_health_service(
    clusters: ClusterService = Depends(get_cluster_service),
    pool: RabbitMQClientPool = Depends(get_client_pool),
    cache: HealthCache = Depends(get_health_cache),
    settings: Settings = Depends(get_settings),
) -> ClusterHealthService:
    return ClusterHealthService(clusters, pool, cache, settings)


# ── Authentication ────────────────────────────────────────────────────────────


def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationFailed("Authentication required")
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    return await auth.resolve(token)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise AccessDenied("Administrator role required")
    return user


def get_caller(request: Request, user: User = Depends(get_current_user)) -> Caller:
    return Caller(
        user=user,
        client_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


# ── Query parameters ──────────────────────────────────────────────────────────


def get_page_request(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500, alias="pageSize"),
    name: str | None = Query(None, description="Filter by resource name"),
    use_regex: bool = Query(False, alias="useRegex"),
) -> PageRequest:
    return PageRequest(page=page, page_size=page_size, name=name, use_regex=use_regex)


def decode_vhost(encoded: str) -> str:
    """Decode a URL-safe base64 vhost path segment (``Lw==`` is ``/``)."""
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        vhost = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (ValueError, UnicodeError) as exc:
        raise ValidationFailed(f"Invalid vhost encoding: {encoded}") from exc
    if not vhost:
        raise ValidationFailed("vhost must not be empty")
    return vhost
