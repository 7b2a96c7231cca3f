"""Tenant schema provisioning from the fixed SQL template."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from appointly.config import settings
from appointly.database import supports_schemas
from appointly.errors import BadRequest, SchemaProvisioningError
from appointly.tenancy.template import render_schema_template

logger = logging.getLogger("appointly.tenancy.provisioning")


class SchemaProvisioner:
    """Creates and verifies per-tenant PostgreSQL schemas.

    On engines without schema support (SQLite) there is one shared namespace
    created by ``init_db``, so every schema is reported as present.
    """

    def __init__(self, engine: AsyncEngine, auto_provision: bool | None = None) -> None:
        self.engine = engine
        self.auto_provision = settings.auto_provision_schemas if auto_provision is None else auto_provision
        self._ready: set[str] = set()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def enabled(self) -> bool:
        return supports_schemas(self.engine)

    async def schema_exists(self, schema_name: str) -> bool:
        if not self.enabled:
            return True
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    "SELECT EXISTS(SELECT 1 FROM information_schema.schemata "
                    "WHERE schema_name = :name)"
                ),
                {"name": schema_name},
            )
            return bool(result.scalar())

    async def create_schema(self, schema_name: str) -> None:
        """Instantiate the template for ``schema_name`` in a single transaction.

        On failure the schema is dropped (best effort) and
        ``SchemaProvisioningError`` is raised.
        """
        try:
            statements = render_schema_template(schema_name)
        except BadRequest as exc:
            raise SchemaProvisioningError(schema_name, exc.message) from exc

        logger.info("Creating tenant schema %s (%d statements)", schema_name, len(statements))
        try:
            async with self.engine.begin() as conn:
                for statement in statements:
                    await conn.exec_driver_sql(statement)
        except SQLAlchemyError as exc:
            logger.error("Tenant schema %s creation failed: %s", schema_name, exc)
            await self._drop_schema(schema_name)
            raise SchemaProvisioningError(schema_name, str(exc)) from exc

        self._ready.add(schema_name)
        logger.info("Tenant schema %s created", schema_name)

    async def _drop_schema(self, schema_name: str) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.exec_driver_sql(f'DROP SCHEMA IF EXISTS "{schema_name}" CASCADE')
        except SQLAlchemyError as exc:
            logger.error("Cleanup of tenant schema %s failed, it may be orphaned: %s", schema_name, exc)

    async def ensure_schema(self, schema_name: str) -> None:
        """Make sure the tenant schema exists, creating it on first use."""
        if schema_name in self._ready or not self.enabled:
            return

        # Serialise first-use provisioning of the same schema within this process.
        async with self._locks[schema_name]:
            if schema_name in self._ready:
                return
            try:
                exists = await self.schema_exists(schema_name)
            except SQLAlchemyError as exc:
                raise SchemaProvisioningError(schema_name, str(exc)) from exc

            if not exists:
                if not self.auto_provision:
                    raise SchemaProvisioningError(schema_name, "schema is missing and auto-provisioning is disabled")
                await self.create_schema(schema_name)
            self._ready.add(schema_name)
