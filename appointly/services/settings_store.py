"""Tenant settings access: raw key lookup and the slot-duration setting."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.config import settings
from appointly.errors import BadRequest
from appointly.models.setting import APPOINTMENT_DURATION_KEY, Setting

logger = logging.getLogger("appointly.settings")


async def get_setting(session: AsyncSession, key: str) -> Optional[Setting]:
    result = await session.execute(select(Setting).where(Setting.key == key))
    return result.scalar_one_or_none()


def coerce_duration(raw: object) -> int:
    """Interpret a stored duration value, falling back to the default.

    Anything that is not an integer in (0, MAX_APPOINTMENT_DURATION] is
    treated as unset.
    """
    default = settings.default_appointment_duration
    if raw is None:
        return default
    try:
        minutes = int(str(raw).strip())
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", APPOINTMENT_DURATION_KEY, raw)
        return default
    if minutes <= 0 or minutes > settings.max_appointment_duration:
        logger.warning("Ignoring out-of-range %s=%d", APPOINTMENT_DURATION_KEY, minutes)
        return default
    return minutes


async def get_appointment_duration(session: AsyncSession) -> int:
    """Slot length in minutes; any read failure falls back to the default."""
    try:
        setting = await get_setting(session, APPOINTMENT_DURATION_KEY)
    except SQLAlchemyError as exc:
        logger.warning("Failed to read %s, using default: %s", APPOINTMENT_DURATION_KEY, exc)
        return coerce_duration(None)
    return coerce_duration(setting.value if setting else None)


async def set_appointment_duration(session: AsyncSession, minutes: int) -> int:
    if minutes <= 0:
        raise BadRequest("appointment duration must be positive")
    if minutes > settings.max_appointment_duration:
        raise BadRequest(
            f"appointment duration cannot exceed {settings.max_appointment_duration} minutes"
        )

    setting = await get_setting(session, APPOINTMENT_DURATION_KEY)
    if setting is None:
        setting = Setting(key=APPOINTMENT_DURATION_KEY, value=str(minutes))
        session.add(setting)
    setting.value = str(minutes)
    setting.description = "Appointment duration in minutes for available slots calculation"
    await session.commit()
    logger.info("Appointment duration set to %d minutes", minutes)
    return minutes
