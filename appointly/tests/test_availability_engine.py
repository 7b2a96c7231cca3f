"""Tests for slot generation and availability filtering."""

from __future__ import annotations

from datetime import date, datetime, time

import pytest
from sqlalchemy.exc import SQLAlchemyError

from appointly.availability import engine as availability_engine
from appointly.availability.engine import (
    availability,
    day_of_week,
    generate_slots,
    parse_booking_date,
    parse_clock,
)
from appointly.errors import BadRequest, NotFound
from appointly.models.appointment import Appointment
from appointly.models.setting import APPOINTMENT_DURATION_KEY, Setting
from appointly.services import settings_store


def test_generate_slots_hourly_window():
    assert generate_slots((9, 0), (17, 0), 60) == [
        "09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00",
    ]


def test_generate_slots_drops_partial_trailing_slot():
    assert generate_slots((9, 0), (17, 0), 90) == ["09:00", "10:30", "12:00", "13:30", "15:00"]
    assert generate_slots((9, 0), (9, 30), 60) == []


def test_day_of_week_is_sunday_based():
    assert day_of_week(date(2026, 10, 18)) == 0  # Sunday
    assert day_of_week(date(2026, 10, 19)) == 1  # Monday
    assert day_of_week(date(2026, 10, 24)) == 6  # Saturday


@pytest.mark.parametrize(
    "value, expected",
    [
        ("09:00", (9, 0)),
        ("9:05", (9, 5)),
        ("17:30:00", (17, 30)),
        ("0000-01-01T09:00:00Z", (9, 0)),
        ("2024-03-01 14:15:00+02:00", (14, 15)),
        (time(8, 45), (8, 45)),
        (datetime(2024, 1, 1, 10, 20), (10, 20)),
    ],
)
def test_parse_clock_accepts_clock_and_timestamp_forms(value, expected):
    assert parse_clock(value) == expected


@pytest.mark.parametrize("value", ["", "9am", "25:00", "12:60", "noon"])
def test_parse_clock_rejects_garbage(value):
    with pytest.raises(BadRequest):
        parse_clock(value)


@pytest.mark.parametrize("value", ["2024/01/01", "01-02-2024", "2024-02-30", ""])
def test_parse_booking_date_rejects_invalid(value):
    with pytest.raises(BadRequest):
        parse_booking_date(value)


def _booking(clinic, day: date, at: time, status: str) -> Appointment:
    return Appointment(
        specialist_id=clinic["specialist_id"],
        service_id=clinic["service_id"],
        appointment_date=day,
        appointment_time=at,
        status=status,
        payment_status="pending",
        total_amount=100,
    )


@pytest.mark.asyncio
async def test_available_slots_default_duration(db_session, clinic, future_date):
    monday = future_date(1)

    slots = await availability.available_slots(db_session, clinic["specialist_id"], monday.isoformat())

    assert len(slots) == 8
    assert slots[0] == "09:00"
    assert slots[-1] == "16:00"


@pytest.mark.asyncio
async def test_available_slots_uses_configured_duration(db_session, clinic, future_date):
    db_session.add(Setting(key=APPOINTMENT_DURATION_KEY, value="90"))
    await db_session.commit()

    slots = await availability.available_slots(
        db_session, clinic["specialist_id"], future_date(2).isoformat()
    )

    assert slots == ["09:00", "10:30", "12:00", "13:30", "15:00"]


@pytest.mark.asyncio
async def test_booked_slots_are_removed_but_cancelled_ones_are_offered(db_session, clinic, future_date):
    monday = future_date(1)
    db_session.add_all(
        [
            _booking(clinic, monday, time(10, 0), "confirmed"),
            _booking(clinic, monday, time(11, 0), "pending"),
            _booking(clinic, monday, time(12, 0), "cancelled"),
        ]
    )
    await db_session.commit()

    slots = await availability.available_slots(db_session, clinic["specialist_id"], monday.isoformat())

    assert "10:00" not in slots
    assert "11:00" not in slots
    assert "12:00" in slots
    assert len(slots) == 6


@pytest.mark.asyncio
async def test_day_without_working_hours_is_empty(db_session, clinic, future_date):
    sunday = future_date(0)

    slots = await availability.available_slots(db_session, clinic["specialist_id"], sunday.isoformat())

    assert slots == []


@pytest.mark.asyncio
async def test_unknown_specialist_and_bad_date(db_session, clinic):
    with pytest.raises(NotFound):
        await availability.available_slots(db_session, 9999, "2030-01-07")

    with pytest.raises(BadRequest):
        await availability.available_slots(db_session, clinic["specialist_id"], "07-01-2030")

    with pytest.raises(BadRequest):
        await availability.available_slots(db_session, 0, "2030-01-07")


@pytest.mark.asyncio
async def test_appointment_lookup_failure_returns_unfiltered_slots(
    db_session, clinic, future_date, monkeypatch
):
    monday = future_date(1)
    db_session.add(_booking(clinic, monday, time(9, 0), "confirmed"))
    await db_session.commit()

    async def _broken(*args, **kwargs):
        raise SQLAlchemyError("appointments table unavailable")

    monkeypatch.setattr(availability_engine, "list_for_specialist_on", _broken)

    slots = await availability.available_slots(db_session, clinic["specialist_id"], monday.isoformat())

    assert len(slots) == 8
    assert "09:00" in slots


@pytest.mark.asyncio
async def test_settings_read_failure_uses_default_duration(
    db_session, clinic, future_date, monkeypatch
):
    async def _broken(*args, **kwargs):
        raise SQLAlchemyError("settings table unavailable")

    monkeypatch.setattr(settings_store, "get_setting", _broken)

    slots = await availability.available_slots(
        db_session, clinic["specialist_id"], future_date(1).isoformat()
    )

    assert len(slots) == 8
    assert slots[0] == "09:00"
