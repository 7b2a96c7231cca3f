"""In-memory tenant cache with periodic background refresh.

Hot-path lookups read an immutable snapshot (``MappingProxyType``) without
taking any lock. Writers, the periodic full reload and on-miss backfills,
build a new snapshot and swap it in under ``_write_lock``; the lock is never
held across directory I/O. A reader therefore always sees exactly one
generation of the map.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Protocol, Sequence

from appointly.config import settings
from appointly.errors import TenantCacheStartupError, TenantNotFound
from appointly.models.tenant import Tenant
from appointly.utils.time import utc_now

logger = logging.getLogger("appointly.tenancy.cache")


class TenantSource(Protocol):
    async def get_active_by_domain(self, domain: str) -> Optional[Tenant]: ...

    async def list_active(self) -> Sequence[Tenant]: ...


@dataclass(frozen=True)
class TenantCacheEntry:
    """Read-optimised projection of a tenant record."""
    id: int
    name: str
    domain: str
    schema_name: str

    @classmethod
    def from_record(cls, record: Tenant) -> "TenantCacheEntry":
        return cls(
            id=record.id,
            name=record.name,
            domain=record.domain,
            schema_name=record.schema_name,
        )


@dataclass(frozen=True)
class CacheStats:
    count: int
    domains: tuple[str, ...]
    generation: int
    last_refreshed_at: Optional[datetime]


class TenantCache:
    """Domain -> tenant lookup kept eventually consistent with the directory.

    Lifecycle: ``start()`` loads synchronously and spawns the refresher,
    ``stop()`` cancels it. Both are safe to call more than once.
    """

    def __init__(self, directory: TenantSource, interval: Optional[float] = None) -> None:
        self.directory = directory
        self.interval = interval if interval and interval > 0 else settings.tenant_cache_refresh_seconds
        self._entries: Mapping[str, TenantCacheEntry] = MappingProxyType({})
        self._write_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._generation = 0
        self._last_refreshed_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load every active tenant, then refresh in the background."""
        if self._running:
            return
        logger.info("Starting tenant cache...")
        try:
            await self.refresh()
        except Exception as exc:
            raise TenantCacheStartupError(f"failed to load initial tenant cache: {exc}") from exc

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="tenant-cache-refresh")
        logger.info(
            f"Tenant cache started with {len(self._entries)} tenants (refresh interval={self.interval}s)"
        )

    async def stop(self) -> None:
        """Stop the background refresher. In-flight lookups are unaffected."""
        task, self._task = self._task, None
        if not self._running and task is None:
            return
        self._running = False
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Tenant cache stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                if not self._running:
                    break
                await self.refresh()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Keep serving the stale snapshot; the next tick retries.
                logger.error(f"Failed to refresh tenant cache: {e}")

    async def refresh(self) -> int:
        """Full reload from the directory with a single atomic swap."""
        records = await self.directory.list_active()
        snapshot: dict[str, TenantCacheEntry] = {}
        for record in records:
            entry = TenantCacheEntry.from_record(record)
            snapshot[entry.domain] = entry

        async with self._write_lock:
            self._entries = MappingProxyType(snapshot)
            self._generation += 1
            self._last_refreshed_at = utc_now()

        logger.debug("Tenant cache refreshed with %d tenants", len(snapshot))
        return len(snapshot)

    async def lookup(self, domain: str) -> TenantCacheEntry:
        entry = self._entries.get(domain)
        if entry is not None:
            return entry

        logger.info("Tenant cache miss for domain %s, querying directory", domain)
        record = await self.directory.get_active_by_domain(domain)
        if record is None:
            raise TenantNotFound(domain)

        entry = TenantCacheEntry.from_record(record)
        async with self._write_lock:
            updated = dict(self._entries)
            updated[entry.domain] = entry
            self._entries = MappingProxyType(updated)
        logger.info("Added tenant %s to cache", entry.domain)
        return entry

    def snapshot(self) -> Mapping[str, TenantCacheEntry]:
        """Current read-only generation of the map."""
        return self._entries

    def stats(self) -> CacheStats:
        entries = self._entries
        return CacheStats(
            count=len(entries),
            domains=tuple(sorted(entries)),
            generation=self._generation,
            last_refreshed_at=self._last_refreshed_at,
        )
