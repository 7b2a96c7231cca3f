"""Tenant directory model: domain to schema routing for multi-tenancy."""

from __future__ import annotations

import re
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column
from pydantic import BaseModel, Field, field_validator

from appointly.database import Base

SCHEMA_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")
RESERVED_SCHEMAS = frozenset({"public", "information_schema"})


def is_valid_schema_name(name: str) -> bool:
    return bool(SCHEMA_NAME_PATTERN.match(name or "")) and name not in RESERVED_SCHEMAS and not name.startswith("pg_")


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    domain: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    schema_name: Mapped[str] = mapped_column(String(63), unique=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# ── Pydantic Schemas ─────────────────────────────────────────

class TenantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str = Field(min_length=1, max_length=255)
    schema_name: str
    active: bool = True

    @field_validator("schema_name")
    @classmethod
    def _check_schema_name(cls, value: str) -> str:
        if not is_valid_schema_name(value):
            raise ValueError("schema_name must be a lowercase identifier (letters, digits, underscore)")
        return value


class TenantResponse(BaseModel):
    id: int
    name: str
    domain: str
    schema_name: str
    active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
