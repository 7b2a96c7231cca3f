"""Appointment booking API endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.api.responses import success
from appointly.database import get_tenant_session
from appointly.models.appointment import (
    AppointmentCreate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusUpdate,
    PaymentStatusUpdate,
)
from appointly.services import appointments as booking
from appointly.tenancy.cache import TenantCacheEntry
from appointly.tenancy.middleware import get_current_tenant

logger = logging.getLogger("appointly.api.appointments")

router = APIRouter(prefix="/api", tags=["appointments"])


@router.post("/appointments", status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    tenant: TenantCacheEntry = Depends(get_current_tenant),
    session: AsyncSession = Depends(get_tenant_session),
):
    appointment = await booking.create_appointment(
        session,
        specialist_id=data.specialist_id,
        service_id=data.service_id,
        appointment_date=data.appointment_date,
        appointment_time=data.appointment_time,
        user_id=data.user_id,
        notes=data.notes,
    )
    logger.info(
        "Booked appointment %d for %s on %s at %s",
        appointment.id,
        tenant.domain,
        data.appointment_date,
        data.appointment_time,
    )
    return success(
        AppointmentResponse.model_validate(appointment),
        status_code=201,
        message="Appointment created successfully",
    )


@router.get("/appointments/{appointment_id}")
async def get_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_tenant_session),
):
    appointment = await booking.get_appointment(session, appointment_id)
    return success(AppointmentResponse.model_validate(appointment))


@router.put("/appointments/{appointment_id}")
async def reschedule_appointment(
    appointment_id: int,
    data: AppointmentReschedule,
    session: AsyncSession = Depends(get_tenant_session),
):
    """Move an appointment; the conflict check ignores the appointment itself."""
    appointment = await booking.reschedule_appointment(
        session,
        appointment_id,
        appointment_date=data.appointment_date,
        appointment_time=data.appointment_time,
        specialist_id=data.specialist_id,
        notes=data.notes,
    )
    return success(AppointmentResponse.model_validate(appointment), message="Appointment updated successfully")


@router.post("/appointments/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: int,
    user_id: int | None = Query(None),
    session: AsyncSession = Depends(get_tenant_session),
):
    appointment = await booking.cancel_appointment(session, appointment_id, user_id=user_id)
    return success(AppointmentResponse.model_validate(appointment), message="Appointment cancelled successfully")


@router.patch("/admin/appointments/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    session: AsyncSession = Depends(get_tenant_session),
):
    appointment = await booking.update_status(session, appointment_id, data.status)
    return success(AppointmentResponse.model_validate(appointment))


@router.patch("/admin/appointments/{appointment_id}/payment-status")
async def update_payment_status(
    appointment_id: int,
    data: PaymentStatusUpdate,
    session: AsyncSession = Depends(get_tenant_session),
):
    appointment = await booking.update_payment_status(session, appointment_id, data.payment_status)
    return success(AppointmentResponse.model_validate(appointment))
