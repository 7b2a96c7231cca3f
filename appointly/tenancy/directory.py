"""Tenant directory store: the persisted source of truth for domain routing."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appointly.errors import BadRequest, Conflict
from appointly.models.tenant import Tenant, TenantCreate
from appointly.tenancy.domain import normalize_domain

logger = logging.getLogger("appointly.tenancy.directory")


class TenantDirectory:
    """Reads and registers tenant records in the default schema."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_active_by_domain(self, domain: str) -> Optional[Tenant]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Tenant).where(Tenant.domain == domain, Tenant.active.is_(True))
            )
            return result.scalar_one_or_none()

    async def list_active(self) -> list[Tenant]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Tenant).where(Tenant.active.is_(True)).order_by(Tenant.domain)
            )
            return list(result.scalars().all())

    async def list_all(self) -> list[Tenant]:
        async with self._session_factory() as session:
            result = await session.execute(select(Tenant).order_by(Tenant.created_at.desc(), Tenant.id.desc()))
            return list(result.scalars().all())

    async def create_tenant(self, data: TenantCreate) -> Tenant:
        domain = normalize_domain(data.domain)
        if not domain:
            raise BadRequest("No valid domain found")

        tenant = Tenant(
            name=data.name.strip(),
            domain=domain,
            schema_name=data.schema_name,
            active=data.active,
        )
        async with self._session_factory() as session:
            session.add(tenant)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise Conflict("A tenant with this domain or schema already exists") from exc
            await session.refresh(tenant)

        logger.info("Registered tenant %s (%s -> %s)", tenant.id, tenant.domain, tenant.schema_name)
        return tenant
