"""Tests for the in-memory tenant cache and its refresh loop."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import SQLAlchemyError

from appointly.errors import TenantCacheStartupError, TenantNotFound
from appointly.models.tenant import Tenant
from appointly.tenancy.cache import TenantCache


def _tenant(tid: int, domain: str, schema: str, active: bool = True) -> Tenant:
    return Tenant(id=tid, name=domain, domain=domain, schema_name=schema, active=active)


class FakeDirectory:
    def __init__(self, tenants):
        self.tenants = list(tenants)
        self.fail = False
        self.list_calls = 0
        self.domain_calls: list[str] = []

    async def list_active(self):
        self.list_calls += 1
        if self.fail:
            raise SQLAlchemyError("directory unavailable")
        return [t for t in self.tenants if t.active]

    async def get_active_by_domain(self, domain):
        self.domain_calls.append(domain)
        if self.fail:
            raise SQLAlchemyError("directory unavailable")
        for t in self.tenants:
            if t.domain == domain and t.active:
                return t
        return None


@pytest.mark.asyncio
async def test_refresh_loads_only_active_tenants():
    directory = FakeDirectory(
        [_tenant(1, "alpha.com", "alpha"), _tenant(2, "beta.com", "beta", active=False)]
    )
    cache = TenantCache(directory, interval=60)

    count = await cache.refresh()

    assert count == 1
    assert set(cache.snapshot()) == {"alpha.com"}
    stats = cache.stats()
    assert stats.count == 1
    assert stats.domains == ("alpha.com",)
    assert stats.generation == 1
    assert stats.last_refreshed_at is not None


@pytest.mark.asyncio
async def test_lookup_hit_does_not_touch_directory():
    directory = FakeDirectory([_tenant(1, "alpha.com", "alpha")])
    cache = TenantCache(directory, interval=60)
    await cache.refresh()

    entry = await cache.lookup("alpha.com")

    assert entry.schema_name == "alpha"
    assert directory.domain_calls == []


@pytest.mark.asyncio
async def test_lookup_miss_backfills_from_directory():
    directory = FakeDirectory([])
    cache = TenantCache(directory, interval=60)
    await cache.refresh()

    directory.tenants.append(_tenant(7, "late.com", "late"))
    entry = await cache.lookup("late.com")

    assert entry.id == 7
    assert "late.com" in cache.snapshot()
    # Second lookup is served from memory.
    await cache.lookup("late.com")
    assert directory.domain_calls == ["late.com"]


@pytest.mark.asyncio
async def test_unknown_domain_raises_tenant_not_found():
    cache = TenantCache(FakeDirectory([]), interval=60)

    with pytest.raises(TenantNotFound) as exc_info:
        await cache.lookup("nobody.com")

    assert exc_info.value.message == "Tenant not found for domain: nobody.com"
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_refresh_swaps_snapshot_atomically():
    directory = FakeDirectory([_tenant(1, "alpha.com", "alpha")])
    cache = TenantCache(directory, interval=60)
    await cache.refresh()
    before = cache.snapshot()

    directory.tenants = [_tenant(2, "beta.com", "beta")]
    await cache.refresh()
    after = cache.snapshot()

    # Readers holding the old generation keep a consistent view.
    assert set(before) == {"alpha.com"}
    assert set(after) == {"beta.com"}
    with pytest.raises(TypeError):
        after["gamma.com"] = None  # type: ignore[index]


@pytest.mark.asyncio
async def test_start_fails_when_initial_load_fails():
    directory = FakeDirectory([])
    directory.fail = True
    cache = TenantCache(directory, interval=60)

    with pytest.raises(TenantCacheStartupError):
        await cache.start()

    assert cache.running is False


@pytest.mark.asyncio
async def test_background_refresh_failure_keeps_stale_snapshot():
    directory = FakeDirectory([_tenant(1, "alpha.com", "alpha")])
    cache = TenantCache(directory, interval=0.01)
    await cache.start()
    try:
        directory.fail = True
        await asyncio.sleep(0.05)

        assert cache.running is True
        assert directory.list_calls > 1
        entry = await cache.lookup("alpha.com")
        assert entry.schema_name == "alpha"
    finally:
        await cache.stop()


@pytest.mark.asyncio
async def test_background_refresh_picks_up_new_tenants():
    directory = FakeDirectory([])
    cache = TenantCache(directory, interval=0.01)
    await cache.start()
    try:
        directory.tenants.append(_tenant(3, "new.com", "new_clinic"))
        await asyncio.sleep(0.05)
        assert "new.com" in cache.snapshot()
    finally:
        await cache.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent():
    cache = TenantCache(FakeDirectory([]), interval=60)
    await cache.stop()

    await cache.start()
    await cache.stop()
    await cache.stop()

    assert cache.running is False
