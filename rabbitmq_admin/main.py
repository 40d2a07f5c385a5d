import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rabbitmq_admin.deps import get_audit_store, get_client_pool, get_settings, get_state_store
from rabbitmq_admin.errors import AdminError
from rabbitmq_admin.routers import audits, auth, clusters, health, monitoring, rabbitmq, resources, users
from rabbitmq_admin.services.audit import AuditService
from rabbitmq_admin.services.users import UserService

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def _audit_retention_loop(service: AuditService, interval_hours: float) -> None:
    while True:
        await asyncio.sleep(interval_hours * 3600)
        try:
            await service.cleanup()
        except Exception:
            logger.exception("Scheduled audit retention cleanup failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    await UserService(get_state_store()).ensure_bootstrap_admin(
        settings.bootstrap_admin_username, settings.bootstrap_admin_password
    )

    retention: asyncio.Task | None = None
    if settings.audit_retention_enabled:
        audit_service = AuditService(get_audit_store(), settings)
        retention = asyncio.create_task(
            _audit_retention_loop(audit_service, settings.audit_retention_interval_hours)
        )
    try:
        yield
    finally:
        if retention is not None:
            retention.cancel()
            with suppress(asyncio.CancelledError):
                await retention
        await get_client_pool().aclose()


app = FastAPI(
    title="RabbitMQ Admin API",
    description=(
        "Administration backend for RabbitMQ clusters: stores cluster credentials, "
        "proxies the Management API with per-user authorization, paginates "
        "resource listings, keeps an audit trail of write operations and monitors "
        "cluster health."
    ),
    version="0.1.0",
    # root_path allows FastAPI to generate correct OpenAPI URLs when served
    # behind a reverse proxy at a sub-path.
    root_path=os.getenv("ROOT_PATH", ""),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AdminError)
async def admin_error_handler(request: Request, exc: AdminError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    body = {
        "detail": exc.message,
        "error": exc.title,
        "status": exc.status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
    }
    if exc.details:
        body["details"] = exc.details
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(clusters.router)
app.include_router(rabbitmq.router)
app.include_router(resources.router)
app.include_router(audits.router)
app.include_router(monitoring.router)
