"""Tenant settings API: slot duration used by the availability engine."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.api.responses import success
from appointly.database import get_tenant_session
from appointly.models.setting import AppointmentDurationUpdate
from appointly.services.settings_store import get_appointment_duration, set_appointment_duration

router = APIRouter(prefix="/api/admin/settings", tags=["settings"])


@router.get("/appointment-duration")
async def read_appointment_duration(session: AsyncSession = Depends(get_tenant_session)):
    minutes = await get_appointment_duration(session)
    return success({"minutes": minutes})


@router.put("/appointment-duration")
async def update_appointment_duration(
    data: AppointmentDurationUpdate,
    session: AsyncSession = Depends(get_tenant_session),
):
    """Set the slot length in minutes (1-480)."""
    minutes = await set_appointment_duration(session, data.minutes)
    return success({"minutes": minutes}, message="Appointment duration updated successfully")
