"""Booking flow tests: conflict detection, the unique-slot index and state transitions."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from appointly.errors import BadRequest, Conflict, NotFound, SlotAlreadyBooked
from appointly.models.appointment import Appointment, AppointmentStatus, PaymentStatus
from appointly.models.service import Service
from appointly.services import appointments as booking


async def _book(session, clinic, day: date, at: time, **kwargs) -> Appointment:
    return await booking.create_appointment(
        session,
        specialist_id=clinic["specialist_id"],
        service_id=clinic["service_id"],
        appointment_date=day,
        appointment_time=at,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_create_appointment_defaults(db_session, clinic, future_date):
    appt = await _book(db_session, clinic, future_date(1), time(10, 0), user_id=5, notes="first visit")

    assert appt.id is not None
    assert appt.status == AppointmentStatus.PENDING.value
    assert appt.payment_status == PaymentStatus.PENDING.value
    assert appt.total_amount == Decimal("100.00")
    assert appt.user_id == 5


@pytest.mark.asyncio
async def test_second_booking_for_same_slot_conflicts(db_session, clinic, future_date):
    monday = future_date(1)
    await _book(db_session, clinic, monday, time(10, 0))

    with pytest.raises(SlotAlreadyBooked) as exc_info:
        await _book(db_session, clinic, monday, time(10, 0))

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "appointment time is already booked"


@pytest.mark.asyncio
async def test_unique_index_catches_race_past_the_precheck(db_session, clinic, future_date, monkeypatch):
    monday = future_date(1)
    await _book(db_session, clinic, monday, time(11, 0))

    async def _no_conflict(*args, **kwargs):
        return None

    # Simulate a concurrent request that passed the read check before the first commit.
    monkeypatch.setattr(booking, "find_conflict", _no_conflict)

    with pytest.raises(SlotAlreadyBooked):
        await _book(db_session, clinic, monday, time(11, 0))

    live = await db_session.scalar(
        select(func.count()).select_from(Appointment).where(Appointment.status != "cancelled")
    )
    assert live == 1


@pytest.mark.asyncio
async def test_cancelled_slot_can_be_booked_again(db_session, clinic, future_date):
    monday = future_date(1)
    first = await _book(db_session, clinic, monday, time(12, 0))
    await booking.cancel_appointment(db_session, first.id)

    again = await _book(db_session, clinic, monday, time(12, 0))

    assert again.id != first.id


@pytest.mark.asyncio
async def test_past_slot_is_rejected(db_session, clinic):
    with pytest.raises(BadRequest, match="past"):
        await _book(db_session, clinic, date(2020, 1, 6), time(9, 0))


@pytest.mark.asyncio
async def test_unknown_or_inactive_references(db_session, clinic, future_date):
    monday = future_date(1)
    with pytest.raises(NotFound):
        await booking.create_appointment(
            db_session,
            specialist_id=999,
            service_id=clinic["service_id"],
            appointment_date=monday,
            appointment_time=time(9, 0),
        )

    retired = Service(name="Retired", price=Decimal("10.00"), active=False)
    db_session.add(retired)
    await db_session.commit()
    with pytest.raises(BadRequest, match="not active"):
        await booking.create_appointment(
            db_session,
            specialist_id=clinic["specialist_id"],
            service_id=retired.id,
            appointment_date=monday,
            appointment_time=time(9, 0),
        )


@pytest.mark.asyncio
async def test_reschedule_ignores_own_slot_and_detects_others(db_session, clinic, future_date):
    monday = future_date(1)
    a = await _book(db_session, clinic, monday, time(9, 0))
    await _book(db_session, clinic, monday, time(10, 0))

    # Same slot, only notes change.
    same = await booking.reschedule_appointment(
        db_session, a.id, appointment_date=monday, appointment_time=time(9, 0), notes="bring x-rays"
    )
    assert same.notes == "bring x-rays"

    with pytest.raises(SlotAlreadyBooked):
        await booking.reschedule_appointment(
            db_session, a.id, appointment_date=monday, appointment_time=time(10, 0)
        )

    moved = await booking.reschedule_appointment(
        db_session, a.id, appointment_date=monday, appointment_time=time(14, 0)
    )
    assert moved.appointment_time == time(14, 0)


@pytest.mark.asyncio
async def test_cancel_rules(db_session, clinic, future_date):
    monday = future_date(1)
    appt = await _book(db_session, clinic, monday, time(15, 0), user_id=3)

    with pytest.raises(BadRequest, match="unauthorized"):
        await booking.cancel_appointment(db_session, appt.id, user_id=4)

    cancelled = await booking.cancel_appointment(db_session, appt.id, user_id=3)
    assert cancelled.status == AppointmentStatus.CANCELLED.value

    with pytest.raises(BadRequest, match="already cancelled"):
        await booking.cancel_appointment(db_session, appt.id)

    with pytest.raises(BadRequest, match="cancelled"):
        await booking.reschedule_appointment(
            db_session, appt.id, appointment_date=monday, appointment_time=time(16, 0)
        )


@pytest.mark.asyncio
async def test_reviving_cancelled_appointment_rechecks_slot(db_session, clinic, future_date):
    monday = future_date(1)
    old = await _book(db_session, clinic, monday, time(13, 0))
    await booking.cancel_appointment(db_session, old.id)
    await _book(db_session, clinic, monday, time(13, 0))

    with pytest.raises(SlotAlreadyBooked):
        await booking.update_status(db_session, old.id, AppointmentStatus.CONFIRMED)


@pytest.mark.asyncio
async def test_completed_appointment_cannot_be_cancelled(db_session, clinic, future_date):
    appt = await _book(db_session, clinic, future_date(2), time(9, 0))
    await booking.update_status(db_session, appt.id, AppointmentStatus.COMPLETED)

    with pytest.raises(BadRequest, match="completed"):
        await booking.cancel_appointment(db_session, appt.id)


@pytest.mark.asyncio
async def test_payment_status_transitions(db_session, clinic, future_date):
    appt = await _book(db_session, clinic, future_date(3), time(9, 0))

    with pytest.raises(Conflict):
        await booking.update_payment_status(db_session, appt.id, PaymentStatus.REFUNDED)

    failed = await booking.update_payment_status(db_session, appt.id, PaymentStatus.FAILED)
    assert failed.payment_status == "failed"
    paid = await booking.update_payment_status(db_session, appt.id, PaymentStatus.COMPLETED)
    assert paid.payment_status == "completed"
    refunded = await booking.update_payment_status(db_session, appt.id, PaymentStatus.REFUNDED)
    assert refunded.payment_status == "refunded"

    with pytest.raises(Conflict):
        await booking.update_payment_status(db_session, appt.id, PaymentStatus.PENDING)


@pytest.mark.asyncio
async def test_get_appointment_validation(db_session):
    with pytest.raises(BadRequest):
        await booking.get_appointment(db_session, 0)
    with pytest.raises(NotFound):
        await booking.get_appointment(db_session, 12345)
