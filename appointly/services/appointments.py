"""Booking flow: conflict checks and appointment state transitions.

The partial unique index on (specialist_id, appointment_date,
appointment_time) for non-cancelled rows is what actually prevents double
booking. ``find_conflict`` runs first only to fail fast with a clear error;
two concurrent requests can both pass it, and the loser is then caught by
the index and reported as ``SlotAlreadyBooked``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.availability.engine import get_specialist
from appointly.errors import BadRequest, Conflict, NotFound, SlotAlreadyBooked
from appointly.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from appointly.models.service import Service
from appointly.utils.time import local_now

logger = logging.getLogger("appointly.appointments")

_LIVE_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.COMPLETED.value,
)

# Allowed payment_status moves; payment processing itself happens elsewhere.
PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    PaymentStatus.PENDING.value: {PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value},
    PaymentStatus.FAILED.value: {PaymentStatus.PENDING.value, PaymentStatus.COMPLETED.value},
    PaymentStatus.COMPLETED.value: {PaymentStatus.REFUNDED.value},
    PaymentStatus.REFUNDED.value: set(),
}


async def find_conflict(
    session: AsyncSession,
    specialist_id: int,
    appointment_date: date,
    appointment_time: time,
    exclude_id: Optional[int] = None,
) -> Optional[Appointment]:
    """Return a live appointment occupying the slot, if any."""
    query = select(Appointment).where(
        Appointment.specialist_id == specialist_id,
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status.in_(_LIVE_STATUSES),
    )
    if exclude_id is not None:
        query = query.where(Appointment.id != exclude_id)
    result = await session.execute(query.limit(1))
    return result.scalar_one_or_none()


async def _ensure_slot_free(
    session: AsyncSession,
    specialist_id: int,
    appointment_date: date,
    appointment_time: time,
    exclude_id: Optional[int] = None,
) -> None:
    clash = await find_conflict(session, specialist_id, appointment_date, appointment_time, exclude_id)
    if clash is not None:
        raise SlotAlreadyBooked()


async def _commit_slot(session: AsyncSession) -> None:
    """Commit, translating a unique-slot violation into ``SlotAlreadyBooked``."""
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        logger.info("Slot taken by a concurrent booking: %s", exc.orig)
        raise SlotAlreadyBooked() from exc


def _reject_past(appointment_date: date, appointment_time: time) -> None:
    if datetime.combine(appointment_date, appointment_time) < local_now():
        raise BadRequest("appointment cannot be in the past")


async def get_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    if appointment_id <= 0:
        raise BadRequest("invalid appointment ID")
    result = await session.execute(select(Appointment).where(Appointment.id == appointment_id))
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise NotFound("appointment not found")
    return appointment


async def create_appointment(
    session: AsyncSession,
    *,
    specialist_id: int,
    service_id: int,
    appointment_date: date,
    appointment_time: time,
    user_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> Appointment:
    specialist = await get_specialist(session, specialist_id)
    if specialist is None:
        raise NotFound("specialist not found")
    if not specialist.active:
        raise BadRequest("specialist is not active")

    service = (
        await session.execute(select(Service).where(Service.id == service_id))
    ).scalar_one_or_none()
    if service is None:
        raise NotFound("service not found")
    if not service.active:
        raise BadRequest("service is not active")

    await _ensure_slot_free(session, specialist_id, appointment_date, appointment_time)
    _reject_past(appointment_date, appointment_time)

    appointment = Appointment(
        user_id=user_id,
        specialist_id=specialist_id,
        service_id=service_id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        status=AppointmentStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        total_amount=service.price,
        notes=notes,
    )
    session.add(appointment)
    await _commit_slot(session)
    await session.refresh(appointment)
    logger.info(
        "Booked appointment %s for specialist %s at %s %s",
        appointment.id,
        specialist_id,
        appointment_date.isoformat(),
        appointment_time.strftime("%H:%M"),
    )
    return appointment


async def reschedule_appointment(
    session: AsyncSession,
    appointment_id: int,
    *,
    appointment_date: date,
    appointment_time: time,
    specialist_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise BadRequest("cannot update cancelled appointment")

    target_specialist = specialist_id or appointment.specialist_id
    moved = (
        target_specialist != appointment.specialist_id
        or appointment_date != appointment.appointment_date
        or appointment_time != appointment.appointment_time
    )
    if moved:
        if target_specialist != appointment.specialist_id and await get_specialist(session, target_specialist) is None:
            raise NotFound("specialist not found")
        await _ensure_slot_free(
            session, target_specialist, appointment_date, appointment_time, exclude_id=appointment.id
        )
        _reject_past(appointment_date, appointment_time)

    appointment.specialist_id = target_specialist
    appointment.appointment_date = appointment_date
    appointment.appointment_time = appointment_time
    if notes is not None:
        appointment.notes = notes
    await _commit_slot(session)
    await session.refresh(appointment)
    return appointment


async def cancel_appointment(
    session: AsyncSession, appointment_id: int, user_id: Optional[int] = None
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    if user_id is not None and appointment.user_id != user_id:
        raise BadRequest("unauthorized to cancel this appointment")
    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise BadRequest("appointment is already cancelled")
    if appointment.status == AppointmentStatus.COMPLETED.value:
        raise BadRequest("cannot cancel completed appointment")

    appointment.status = AppointmentStatus.CANCELLED.value
    await session.commit()
    await session.refresh(appointment)
    return appointment


async def update_status(
    session: AsyncSession, appointment_id: int, status: AppointmentStatus
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    if appointment.status == status.value:
        return appointment

    if appointment.status == AppointmentStatus.CANCELLED.value:
        # Reviving a cancelled booking re-occupies its slot.
        await _ensure_slot_free(
            session,
            appointment.specialist_id,
            appointment.appointment_date,
            appointment.appointment_time,
            exclude_id=appointment.id,
        )

    appointment.status = status.value
    await _commit_slot(session)
    await session.refresh(appointment)
    return appointment


async def update_payment_status(
    session: AsyncSession, appointment_id: int, payment_status: PaymentStatus
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    current = appointment.payment_status
    if current == payment_status.value:
        return appointment
    if payment_status.value not in PAYMENT_TRANSITIONS.get(current, set()):
        raise Conflict(f"Cannot change payment status from '{current}' to '{payment_status.value}'")

    appointment.payment_status = payment_status.value
    await session.commit()
    await session.refresh(appointment)
    return appointment
