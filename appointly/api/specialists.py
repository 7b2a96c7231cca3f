"""Specialist availability API: working hours and bookable slots."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.api.responses import success
from appointly.availability.engine import (
    availability,
    get_specialist,
    get_working_hours,
    replace_working_hours,
)
from appointly.database import get_tenant_session
from appointly.errors import BadRequest, NotFound
from appointly.models.specialist import WorkingHourResponse, WorkingHoursUpdate

router = APIRouter(prefix="/api", tags=["specialists"])


async def _require_specialist(session: AsyncSession, specialist_id: int) -> None:
    if specialist_id <= 0:
        raise BadRequest("Invalid specialist ID")
    if await get_specialist(session, specialist_id) is None:
        raise NotFound("specialist not found")


@router.get("/specialists/{specialist_id}/available-slots")
async def get_available_slots(
    specialist_id: int,
    date: str | None = Query(None, description="YYYY-MM-DD"),
    session: AsyncSession = Depends(get_tenant_session),
):
    """Bookable HH:MM start times for the specialist on the given date."""
    if not date:
        raise BadRequest("Date parameter is required (YYYY-MM-DD format)")
    slots = await availability.available_slots(session, specialist_id, date)
    return success(slots)


@router.get("/specialists/{specialist_id}/working-hours")
async def list_working_hours(
    specialist_id: int,
    session: AsyncSession = Depends(get_tenant_session),
):
    await _require_specialist(session, specialist_id)
    hours = await get_working_hours(session, specialist_id)
    return success([WorkingHourResponse.model_validate(wh) for wh in hours])


@router.put("/admin/specialists/{specialist_id}/working-hours")
async def update_working_hours(
    specialist_id: int,
    data: WorkingHoursUpdate,
    session: AsyncSession = Depends(get_tenant_session),
):
    """Replace the specialist's weekly schedule (at most one window per day)."""
    await _require_specialist(session, specialist_id)
    hours = await replace_working_hours(session, specialist_id, data.working_hours)
    return success(
        [WorkingHourResponse.model_validate(wh) for wh in hours],
        message="Working hours updated successfully",
    )
