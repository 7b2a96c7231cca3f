"""Availability engine: bookable start times for a specialist on a date.

Slots are generated from the specialist's weekly working-hour window for the
requested weekday, stepped by the tenant's ``appointment_duration`` setting,
and then filtered against live (non-cancelled) appointments.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.errors import BadRequest, InternalError, NotFound
from appointly.models.appointment import Appointment, AppointmentStatus
from appointly.models.specialist import Specialist, WorkingHour, WorkingHourIn
from appointly.services.settings_store import get_appointment_duration
from appointly.utils.time import format_hhmm

logger = logging.getLogger("appointly.availability")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")
# Full timestamps such as "0000-01-01T09:00:00Z"; only hour and minute are used.
_STAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ](\d{2}):(\d{2})(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?$")


@dataclass(frozen=True)
class SlotWindow:
    start_minutes: int
    end_minutes: int
    duration: int


def parse_clock(value: str | time | datetime) -> tuple[int, int]:
    """Return ``(hour, minute)`` from a clock value.

    Accepts ``time``/``datetime`` objects, ``HH:MM`` (optionally with
    seconds), or a full date-time stamp from which only the clock is taken.
    """
    if isinstance(value, datetime):
        return value.hour, value.minute
    if isinstance(value, time):
        return value.hour, value.minute

    raw = (value or "").strip() if isinstance(value, str) else ""
    match = _STAMP_RE.match(raw) or _CLOCK_RE.match(raw)
    if match is None:
        raise BadRequest(f"invalid time format: {value!r}")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise BadRequest(f"invalid time format: {value!r}")
    return hour, minute


def parse_booking_date(value: str) -> date:
    if not _DATE_RE.match(value or ""):
        raise BadRequest("invalid date format, use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise BadRequest("invalid date format, use YYYY-MM-DD")


def day_of_week(target: date) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday."""
    return target.isoweekday() % 7


def generate_slots(start: tuple[int, int], end: tuple[int, int], duration: int) -> list[str]:
    """Full-length slot start times between ``start`` and ``end``.

    A trailing slot that would run past ``end`` is not offered.
    """
    if duration <= 0:
        raise ValueError("duration must be positive")

    window = SlotWindow(
        start_minutes=start[0] * 60 + start[1],
        end_minutes=end[0] * 60 + end[1],
        duration=duration,
    )
    slots: list[str] = []
    current = window.start_minutes
    while current + window.duration <= window.end_minutes:
        slots.append(f"{current // 60:02d}:{current % 60:02d}")
        current += window.duration
    return slots


def remove_booked(slots: Sequence[str], appointments: Sequence[Appointment]) -> list[str]:
    booked = {
        format_hhmm(appt.appointment_time)
        for appt in appointments
        if appt.status != AppointmentStatus.CANCELLED.value
    }
    return [slot for slot in slots if slot not in booked]


async def get_specialist(session: AsyncSession, specialist_id: int) -> Optional[Specialist]:
    result = await session.execute(select(Specialist).where(Specialist.id == specialist_id))
    return result.scalar_one_or_none()


async def get_working_hours(session: AsyncSession, specialist_id: int) -> list[WorkingHour]:
    result = await session.execute(
        select(WorkingHour)
        .where(WorkingHour.specialist_id == specialist_id)
        .order_by(WorkingHour.day_of_week)
    )
    return list(result.scalars().all())


async def list_for_specialist_on(
    session: AsyncSession, specialist_id: int, target: date
) -> list[Appointment]:
    result = await session.execute(
        select(Appointment)
        .where(
            Appointment.specialist_id == specialist_id,
            Appointment.appointment_date == target,
        )
        .order_by(Appointment.appointment_time)
    )
    return list(result.scalars().all())


class AvailabilityEngine:
    """Computes the bookable slots for one specialist and calendar date."""

    async def available_slots(
        self,
        session: AsyncSession,
        specialist_id: int,
        date_value: str,
    ) -> list[str]:
        if specialist_id <= 0:
            raise BadRequest("invalid specialist ID")
        if await get_specialist(session, specialist_id) is None:
            raise NotFound("specialist not found")

        target = parse_booking_date(date_value)

        window = await self._window_for(session, specialist_id, day_of_week(target))
        if window is None:
            return []

        start = parse_clock(window.start_time)
        end = parse_clock(window.end_time)
        duration = await get_appointment_duration(session)
        candidates = generate_slots(start, end, duration)

        try:
            existing = await list_for_specialist_on(session, specialist_id, target)
        except SQLAlchemyError as exc:
            # Unfiltered slots; booking re-checks the slot on write.
            logger.warning(
                "Failed to load appointments for specialist %s on %s, returning unfiltered slots: %s",
                specialist_id,
                target.isoformat(),
                exc,
            )
            return candidates

        return remove_booked(candidates, existing)

    async def _window_for(
        self, session: AsyncSession, specialist_id: int, weekday: int
    ) -> Optional[WorkingHour]:
        try:
            result = await session.execute(
                select(WorkingHour).where(
                    WorkingHour.specialist_id == specialist_id,
                    WorkingHour.day_of_week == weekday,
                    WorkingHour.active.is_(True),
                )
            )
            # (specialist_id, day_of_week) is unique, so at most one row.
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to get working hours for specialist %s: %s", specialist_id, exc)
            raise InternalError("failed to get working hours") from exc


async def replace_working_hours(
    session: AsyncSession, specialist_id: int, windows: Sequence[WorkingHourIn]
) -> list[WorkingHour]:
    """Swap the specialist's weekly schedule for ``windows`` in one commit."""
    await session.execute(delete(WorkingHour).where(WorkingHour.specialist_id == specialist_id))
    for item in windows:
        session.add(
            WorkingHour(
                specialist_id=specialist_id,
                day_of_week=item.day_of_week,
                start_time=time(*parse_clock(item.start_time)),
                end_time=time(*parse_clock(item.end_time)),
                active=item.active,
            )
        )
    await session.commit()
    logger.info("Working hours replaced for specialist %s (%d days)", specialist_id, len(windows))
    return await get_working_hours(session, specialist_id)


availability = AvailabilityEngine()
