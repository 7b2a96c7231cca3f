"""Appointly FastAPI application entry point."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from appointly.api.responses import error_response
from appointly.config import settings
from appointly.database import async_session, engine, init_db
from appointly.errors import AppError
from appointly.logging_config import setup_logging
from appointly.observability.metrics import metrics
from appointly.tenancy.cache import TenantCache
from appointly.tenancy.directory import TenantDirectory
from appointly.tenancy.middleware import TenantResolutionMiddleware
from appointly.tenancy.provisioning import SchemaProvisioner

from appointly.api.appointments import router as appointments_router
from appointly.api.platform import router as platform_router
from appointly.api.settings import router as settings_router
from appointly.api.specialists import router as specialists_router

logger = logging.getLogger("appointly")

VERSION = "0.1.0"


def _startup_checks() -> None:
    """Log warnings for misconfigured or missing settings."""
    startup_errors: list[str] = []

    if settings.is_production and not settings.cors_origins_list:
        msg = "APP_ENV=production but CORS_ORIGINS is empty"
        logger.warning(msg)
        startup_errors.append(msg)

    if settings.is_production and not settings.is_postgres:
        msg = "APP_ENV=production without PostgreSQL; tenant schemas need PostgreSQL"
        logger.warning(msg)
        startup_errors.append(msg)

    if not settings.platform_api_key:
        logger.info("○ No PLATFORM_API_KEY, /api/platform endpoints are disabled")

    if not settings.is_postgres:
        logger.info("○ Using a single-namespace database, all tenants share one set of tables")

    if settings.strict_startup_validation and startup_errors:
        raise RuntimeError("Startup validation failed: " + " | ".join(startup_errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    setup_logging(settings.log_level)
    _startup_checks()

    await init_db()
    logger.info("✦ Appointly API started")
    logger.info(f"  Tenant cache refresh interval: {app.state.tenant_cache.interval}s")

    # Fails fast when the tenant directory cannot be read.
    await app.state.tenant_cache.start()

    yield

    await app.state.tenant_cache.stop()
    logger.info("✦ Appointly API shutting down")


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.message)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return error_response(400, f"Invalid request: {detail}")


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def _database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error")


async def _db_ready() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("database readiness check failed")
        return False


def create_app(
    cache: Optional[TenantCache] = None,
    provisioner: Optional[SchemaProvisioner] = None,
    directory: Optional[TenantDirectory] = None,
) -> FastAPI:
    directory = directory or TenantDirectory(async_session)
    cache = cache or TenantCache(directory)
    provisioner = provisioner or SchemaProvisioner(engine)

    app = FastAPI(
        title="Appointly",
        description="Multi-tenant appointment booking API",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.tenant_directory = directory
    app.state.tenant_cache = cache
    app.state.schema_provisioner = provisioner

    # Rate limiting
    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(SQLAlchemyError, _database_error_handler)

    # Middleware added first runs innermost.
    app.add_middleware(TenantResolutionMiddleware, cache=cache, provisioner=provisioner)
    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Request tracing + access log middleware
    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        tenant = getattr(request.state, "tenant", None)
        tenant_domain = tenant.domain if tenant is not None else None
        response.headers["X-Request-ID"] = request_id
        metrics.observe_request(request.url.path, response.status_code, duration_ms, tenant=tenant_domain)
        logger.info(
            "request completed",
            extra={
                "request_id": request_id,
                "tenant": tenant_domain,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    # CORS (outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(specialists_router)
    app.include_router(appointments_router)
    app.include_router(settings_router)
    app.include_router(platform_router)

    @app.get("/")
    async def root():
        return JSONResponse(
            {
                "service": "appointly-api",
                "status": "ok",
                "endpoints": {
                    "health": "/api/health",
                    "docs": "/docs",
                },
            }
        )

    @app.get("/api/health")
    async def health_check():
        database_ready = await _db_ready()
        return {
            "status": "healthy" if database_ready else "degraded",
            "service": "appointly",
            "version": VERSION,
            "tenant_cache_active": cache.running,
            "tenants_cached": cache.stats().count,
            "database_ready": database_ready,
        }

    @app.get("/api/health/live")
    async def liveness_check():
        return {"status": "alive", "service": "appointly"}

    @app.get("/api/health/ready")
    async def readiness_check(response: Response):
        database_ready = await _db_ready()
        cache_ready = cache.running
        ready = database_ready and cache_ready

        if not ready:
            response.status_code = 503

        return {
            "status": "ready" if ready else "not_ready",
            "checks": {
                "database": database_ready,
                "tenant_cache": cache_ready,
            },
        }

    @app.get("/api/metrics")
    async def get_metrics():
        stats = cache.stats()
        return {
            "service": "appointly",
            "version": VERSION,
            "metrics": metrics.snapshot(),
            "tenant_cache": {
                "count": stats.count,
                "generation": stats.generation,
                "last_refreshed_at": stats.last_refreshed_at.isoformat() if stats.last_refreshed_at else None,
            },
        }

    return app


app = create_app()
