"""Platform operator endpoints: tenant registry and tenant cache control.

These routes sit outside tenant resolution and are guarded by a shared
platform key sent in the ``X-Platform-Key`` header.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from appointly.api.responses import success
from appointly.config import settings
from appointly.models.tenant import TenantCreate, TenantResponse
from appointly.tenancy.cache import TenantCache
from appointly.tenancy.directory import TenantDirectory
from appointly.tenancy.provisioning import SchemaProvisioner

logger = logging.getLogger("appointly.platform")

router = APIRouter(prefix="/api/platform", tags=["platform"])

PLATFORM_KEY_HEADER = "x-platform-key"


def require_platform_key(request: Request) -> None:
    configured_key = (settings.platform_api_key or "").strip()
    if not configured_key:
        logger.error("Platform request rejected: PLATFORM_API_KEY is not configured")
        raise HTTPException(status_code=503, detail="Platform API is not configured")

    provided_key = (request.headers.get(PLATFORM_KEY_HEADER) or "").strip()
    if not provided_key or not hmac.compare_digest(configured_key, provided_key):
        raise HTTPException(status_code=401, detail="Invalid platform credentials")


def _directory(request: Request) -> TenantDirectory:
    return request.app.state.tenant_directory


def _cache(request: Request) -> TenantCache:
    return request.app.state.tenant_cache


def _provisioner(request: Request) -> SchemaProvisioner:
    return request.app.state.schema_provisioner


@router.get("/tenants", dependencies=[Depends(require_platform_key)])
async def list_tenants(directory: TenantDirectory = Depends(_directory)):
    tenants = await directory.list_all()
    return success([TenantResponse.model_validate(t) for t in tenants])


@router.post("/tenants", status_code=201, dependencies=[Depends(require_platform_key)])
async def register_tenant(
    data: TenantCreate,
    directory: TenantDirectory = Depends(_directory),
    cache: TenantCache = Depends(_cache),
    provisioner: SchemaProvisioner = Depends(_provisioner),
):
    """Register a tenant, create its schema, and make it routable immediately."""
    tenant = await directory.create_tenant(data)
    await provisioner.ensure_schema(tenant.schema_name)
    if tenant.active:
        await cache.refresh()
    return success(TenantResponse.model_validate(tenant), status_code=201, message="Tenant registered")


@router.get("/tenant-cache", dependencies=[Depends(require_platform_key)])
async def tenant_cache_stats(cache: TenantCache = Depends(_cache)):
    stats = cache.stats()
    return success(
        {
            "count": stats.count,
            "domains": list(stats.domains),
            "generation": stats.generation,
            "last_refreshed_at": stats.last_refreshed_at,
            "running": cache.running,
        }
    )


@router.post("/tenant-cache/refresh", dependencies=[Depends(require_platform_key)])
async def refresh_tenant_cache(cache: TenantCache = Depends(_cache)):
    count = await cache.refresh()
    logger.info(f"Tenant cache refreshed on demand ({count} tenants)")
    return success({"count": count}, message="Tenant cache refreshed")
