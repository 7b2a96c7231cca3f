"""Specialist and weekly working-hour models (tenant schema)."""

from __future__ import annotations

from datetime import datetime, time
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from appointly.database import TenantBase


class Specialist(TenantBase):
    __tablename__ = "specialists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class WorkingHour(TenantBase):
    """One weekly window; day_of_week 0 is Sunday."""

    __tablename__ = "working_hours"
    __table_args__ = (
        UniqueConstraint("specialist_id", "day_of_week", name="uq_working_hours_specialist_day"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_working_hours_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    specialist_id: Mapped[int] = mapped_column(
        ForeignKey("specialists.id", ondelete="CASCADE"), index=True
    )
    day_of_week: Mapped[int] = mapped_column(Integer)
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


# ── Pydantic Schemas ─────────────────────────────────────────

class SpecialistResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    active: bool

    model_config = {"from_attributes": True}


class WorkingHourIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        from appointly.availability.engine import parse_clock
        from appointly.errors import BadRequest

        try:
            hour, minute = parse_clock(value)
        except BadRequest as exc:
            raise ValueError(exc.message) from exc
        return f"{hour:02d}:{minute:02d}"

    @model_validator(mode="after")
    def _check_window(self) -> "WorkingHourIn":
        if self.active and self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class WorkingHoursUpdate(BaseModel):
    working_hours: list[WorkingHourIn]

    @field_validator("working_hours")
    @classmethod
    def _one_per_day(cls, value: list[WorkingHourIn]) -> list[WorkingHourIn]:
        days = [wh.day_of_week for wh in value]
        if len(days) != len(set(days)):
            raise ValueError("only one working-hour window per day_of_week is allowed")
        return value


class WorkingHourResponse(BaseModel):
    id: int
    specialist_id: int
    day_of_week: int
    start_time: time
    end_time: time
    active: bool

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def _format_clock(self, value: time) -> str:
        return value.strftime("%H:%M")
