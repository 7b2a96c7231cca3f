"""Tenant resolution middleware.

Resolves the tenant for every non-exempt request from its Origin, Host or
Referer header, makes sure the tenant schema exists, and attaches the tenant
to ``request.state.tenant``. The database binding itself happens when a
handler checks out a session through ``get_tenant_session``; nothing here
touches shared connection state.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Optional, Sequence

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from appointly.api.responses import error_response
from appointly.errors import InternalError, SchemaProvisioningError, TenantNotFound
from appointly.tenancy.cache import TenantCache, TenantCacheEntry
from appointly.tenancy.domain import domain_from_headers
from appointly.tenancy.provisioning import SchemaProvisioner

logger = logging.getLogger("appointly.tenancy.middleware")

DEFAULT_EXEMPT_PREFIXES: tuple[str, ...] = (
    "/api/health",
    "/api/metrics",
    "/api/platform",
    "/docs",
    "/redoc",
    "/openapi.json",
)

current_tenant: ContextVar[Optional[TenantCacheEntry]] = ContextVar("current_tenant", default=None)


class TenantResolutionMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        cache: TenantCache,
        provisioner: Optional[SchemaProvisioner] = None,
        exempt_prefixes: Sequence[str] = DEFAULT_EXEMPT_PREFIXES,
    ) -> None:
        super().__init__(app)
        self.cache = cache
        self.provisioner = provisioner
        self.exempt_prefixes = tuple(exempt_prefixes)

    def _is_exempt(self, path: str) -> bool:
        return path == "/" or any(
            path == prefix or path.startswith(prefix + "/") for prefix in self.exempt_prefixes
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS" or self._is_exempt(request.url.path):
            return await call_next(request)

        domain = domain_from_headers(request.headers)
        if not domain:
            return error_response(400, "No valid domain found")

        try:
            tenant = await self.cache.lookup(domain)
        except TenantNotFound as exc:
            return error_response(404, exc.message)
        except SQLAlchemyError:
            logger.exception("Tenant directory lookup failed for %s", domain)
            return error_response(500, "Failed to resolve tenant")

        if self.provisioner is not None:
            try:
                await self.provisioner.ensure_schema(tenant.schema_name)
            except SchemaProvisioningError as exc:
                # Raw DDL errors stay in the logs, not in the response body.
                logger.error("Tenant %s schema setup failed: %s", tenant.domain, exc.message)
                return error_response(500, "Failed to prepare tenant schema")

        request.state.tenant = tenant
        token = current_tenant.set(tenant)
        try:
            return await call_next(request)
        finally:
            current_tenant.reset(token)


def get_current_tenant(request: Request) -> TenantCacheEntry:
    """Dependency returning the tenant attached by the middleware."""
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        raise InternalError("Tenant context is not available for this request")
    return tenant
