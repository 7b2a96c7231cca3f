import pytest
from sqlalchemy.exc import OperationalError

from appointly.config import settings
from appointly.errors import BadRequest
from appointly.models.setting import APPOINTMENT_DURATION_KEY, Setting
from appointly.services import settings_store
from appointly.services.settings_store import (
    coerce_duration,
    get_appointment_duration,
    get_setting,
    set_appointment_duration,
)


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 60), ("45", 45), (" 30 ", 30), ("480", 480), ("0", 60), ("-15", 60), ("481", 60), ("abc", 60)],
)
def test_coerce_duration(raw, expected):
    assert coerce_duration(raw) == expected


@pytest.mark.asyncio
async def test_duration_defaults_when_unset(db_session):
    assert await get_appointment_duration(db_session) == 60


@pytest.mark.asyncio
async def test_set_duration_upserts(db_session):
    assert await set_appointment_duration(db_session, 30) == 30
    assert await set_appointment_duration(db_session, 45) == 45

    stored = await get_setting(db_session, APPOINTMENT_DURATION_KEY)
    assert stored.value == "45"
    assert await get_appointment_duration(db_session) == 45


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes", [0, -10, 481])
async def test_set_duration_rejects_out_of_range(db_session, minutes):
    with pytest.raises(BadRequest):
        await set_appointment_duration(db_session, minutes)


@pytest.mark.asyncio
async def test_corrupt_stored_value_falls_back(db_session):
    db_session.add(Setting(key=APPOINTMENT_DURATION_KEY, value="sixty"))
    await db_session.commit()

    assert await get_appointment_duration(db_session) == 60


@pytest.mark.asyncio
async def test_max_duration_follows_settings(db_session, monkeypatch):
    monkeypatch.setattr(settings, "max_appointment_duration", 120)

    with pytest.raises(BadRequest, match="120"):
        await set_appointment_duration(db_session, 150)
    assert coerce_duration("150") == 60


@pytest.mark.asyncio
async def test_duration_read_error_falls_back_to_default(db_session, monkeypatch):
    async def _broken(session, key):
        raise OperationalError("SELECT", {}, Exception("no such table: settings"))

    monkeypatch.setattr(settings_store, "get_setting", _broken)

    assert await get_appointment_duration(db_session) == 60
