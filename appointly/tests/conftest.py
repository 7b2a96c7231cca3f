"""Shared test fixtures for Appointly tests."""

from datetime import date, time, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from appointly.database import Base, TenantBase
from appointly.models import appointment, service, setting, specialist, tenant  # noqa: F401
from appointly.models.service import Service
from appointly.models.specialist import Specialist, WorkingHour


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test, platform and tenant tables in one namespace."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(TenantBase.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session


@pytest.fixture
def future_date():
    """Return a date at least a week ahead falling on ``day_of_week`` (0 = Sunday)."""

    def _future(day_of_week: int) -> date:
        candidate = date.today() + timedelta(days=7)
        while candidate.isoweekday() % 7 != day_of_week:
            candidate += timedelta(days=1)
        return candidate

    return _future


@pytest_asyncio.fixture
async def clinic(db_session: AsyncSession):
    """One specialist working Mon-Fri 09:00-17:00 and one bookable service."""
    doctor = Specialist(name="Dr. Jane Carter", email="jane.carter@example.com", active=True)
    consult = Service(name="Consultation", price=Decimal("100.00"), active=True)
    db_session.add_all([doctor, consult])
    await db_session.flush()

    db_session.add_all(
        [
            WorkingHour(
                specialist_id=doctor.id,
                day_of_week=day,
                start_time=time(9, 0),
                end_time=time(17, 0),
                active=True,
            )
            for day in range(1, 6)
        ]
    )
    await db_session.commit()
    return {"specialist_id": doctor.id, "service_id": consult.id}
