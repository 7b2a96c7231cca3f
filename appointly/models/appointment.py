"""Appointment model (tenant schema) and booking request/response schemas."""

from __future__ import annotations

import enum
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Time, func, text
from sqlalchemy.orm import Mapped, mapped_column
from pydantic import BaseModel, field_serializer, field_validator

from appointly.database import TenantBase


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


_ACTIVE_SLOT = text("status <> 'cancelled'")


class Appointment(TenantBase):
    __tablename__ = "appointments"
    __table_args__ = (
        # Authoritative double-booking guard: one live appointment per slot.
        Index(
            "uq_appointments_active_slot",
            "specialist_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT,
            sqlite_where=_ACTIVE_SLOT,
        ),
        Index("ix_appointments_specialist_date", "specialist_id", "appointment_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    specialist_id: Mapped[int] = mapped_column(ForeignKey("specialists.id", ondelete="CASCADE"))
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id", ondelete="CASCADE"))
    appointment_date: Mapped[date] = mapped_column(Date)
    appointment_time: Mapped[time] = mapped_column(Time)
    status: Mapped[str] = mapped_column(String(20), default=AppointmentStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# ── Pydantic Schemas ─────────────────────────────────────────

def _clock_field(value: str | time) -> time:
    from appointly.availability.engine import parse_clock
    from appointly.errors import BadRequest

    try:
        hour, minute = parse_clock(value)
    except BadRequest as exc:
        raise ValueError(exc.message) from exc
    return time(hour, minute)


class AppointmentCreate(BaseModel):
    specialist_id: int
    service_id: int
    appointment_date: date
    appointment_time: time
    user_id: int | None = None
    notes: str | None = None

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _parse_time(cls, value):
        return _clock_field(value)


class AppointmentReschedule(BaseModel):
    specialist_id: int | None = None
    appointment_date: date
    appointment_time: time
    notes: str | None = None

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _parse_time(cls, value):
        return _clock_field(value)


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class AppointmentResponse(BaseModel):
    id: int
    user_id: int | None = None
    specialist_id: int
    service_id: int
    appointment_date: date
    appointment_time: time
    status: str
    payment_status: str
    total_amount: Decimal
    notes: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_serializer("appointment_time")
    def _format_time(self, value: time) -> str:
        return value.strftime("%H:%M")
