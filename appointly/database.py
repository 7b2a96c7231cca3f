"""Async SQLAlchemy database engine and session management.

Two declarative bases are used:

* ``Base`` holds the platform tables that live in the default (public) schema,
  such as the tenant directory. Alembic manages these.
* ``TenantBase`` holds the tables that exist once per tenant schema. In
  PostgreSQL they are created by the tenant schema template; on single
  namespace databases (SQLite) ``init_db`` creates them directly.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from appointly.config import settings
from appointly.errors import InternalError

_engine_kwargs: dict = {"echo": False}
if settings.is_postgres:
    # PostgreSQL connection pool settings
    _engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    })

engine = create_async_engine(settings.database_url, **_engine_kwargs)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
logger = logging.getLogger("appointly.database")


class Base(DeclarativeBase):
    pass


class TenantBase(DeclarativeBase):
    pass


def supports_schemas(bind: AsyncEngine | AsyncConnection) -> bool:
    return bind.dialect.name == "postgresql"


async def init_db() -> None:
    """Create platform tables when AUTO_CREATE_SCHEMA is enabled."""
    if not settings.auto_create_schema:
        logger.info("Skipping metadata.create_all (AUTO_CREATE_SCHEMA=false)")
        return

    # Ensure model modules are imported so SQLAlchemy metadata is populated.
    from appointly.models import tenant  # noqa: F401
    from appointly.models import appointment, service, setting, specialist  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if not supports_schemas(conn):
            # Single namespace: every tenant shares the default tables.
            await conn.run_sync(TenantBase.metadata.create_all)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Dependency yielding an async DB session on the default schema."""
    async with async_session() as session:
        yield session


async def _set_search_path(conn: AsyncConnection, path: str) -> None:
    await conn.execute(text("SELECT set_config('search_path', :path, false)"), {"path": path})
    await conn.commit()


@asynccontextmanager
async def tenant_session(
    schema_name: str,
    bind: AsyncEngine | None = None,
) -> AsyncIterator[AsyncSession]:
    """Yield a session pinned to one pooled connection bound to ``schema_name``.

    The search_path is applied right after checkout and reset before the
    connection goes back to the pool, so no two requests ever share a
    connection-level namespace.
    """
    target = bind or engine
    default_schema = settings.default_schema

    async with target.connect() as conn:
        scoped = supports_schemas(conn) and schema_name != default_schema
        if scoped:
            await _set_search_path(conn, f'"{schema_name}", {default_schema}')

        session = AsyncSession(bind=conn, expire_on_commit=False)
        try:
            yield session
        finally:
            await session.close()
            if scoped:
                try:
                    if conn.in_transaction():
                        await conn.rollback()
                    await _set_search_path(conn, default_schema)
                except SQLAlchemyError:
                    # Never hand a connection with a tenant search_path back to the pool.
                    logger.exception("Failed to reset search_path after tenant %s", schema_name)
                    await conn.invalidate()


async def get_tenant_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency yielding a session bound to the tenant resolved for this request."""
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        raise InternalError("Tenant context is not available for this request")

    async with tenant_session(tenant.schema_name) as session:
        yield session
