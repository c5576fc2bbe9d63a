"""
Read-through cache of EffectivePermission values keyed by (org_id, permission_key).

Correctness is generation-based:
- An entry is fresh while its generation is >= the store's current
  generation for that key and its soft TTL has not lapsed.
- A miss or stale entry triggers ONE upstream fetch per key at a time
  (single-flight); concurrent requests await the same task.
- While a stale entry is being refreshed, other requests may be served
  the stale value, but only until stale_window_seconds after the refresh
  started. After that they wait for the fetch.
- A fetched value never replaces an entry tagged with a newer generation.

The cache is owned by one event loop. Every mutation happens between
awaits, so no lock is needed on the read path.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from pto_access.platform.upstream import call_upstream
from pto_access.services.permission_store import EffectivePermission, PermissionTemplateStore

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


@dataclass
class _CacheEntry:
    value: EffectivePermission
    stored_at: float


@dataclass
class _Flight:
    started_at: float
    task: Optional["asyncio.Task"] = None


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    stale_serves: int = 0
    evictions: int = 0


def _retrieve_exception(task: "asyncio.Task") -> None:
    # Mark the exception as retrieved when every waiter was cancelled
    if not task.cancelled():
        task.exception()


class PermissionCache:
    """
    Usage:
        cache = PermissionCache(store, timeout_seconds=2.0)
        effective = await cache.get(org_id, "can_create_events")
        cache.invalidate(org_id, "can_create_events")
    """

    def __init__(
        self,
        store: PermissionTemplateStore,
        timeout_seconds: float = 2.0,
        soft_ttl_seconds: Optional[float] = 300.0,
        stale_window_seconds: float = 2.0,
        max_entries: int = 50000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._store = store
        self._timeout = timeout_seconds
        self._soft_ttl = soft_ttl_seconds
        self._stale_window = stale_window_seconds
        self._max_entries = max_entries
        self._clock = clock

        self._entries: "OrderedDict[CacheKey, _CacheEntry]" = OrderedDict()
        self._in_flight: Dict[CacheKey, _Flight] = {}
        self._stats = CacheStats()

    @property
    def store(self) -> PermissionTemplateStore:
        return self._store

    def _is_fresh(self, entry: _CacheEntry, org_id: str, permission_key: str, now: float) -> bool:
        if entry.value.generation < self._store.current_generation(org_id, permission_key):
            return False
        if self._soft_ttl and now - entry.stored_at >= self._soft_ttl:
            return False
        return True

    async def get(self, org_id: str, permission_key: str) -> EffectivePermission:
        """
        Return the effective permission, fetching through the store on miss.

        Raises:
            UnknownPermissionError: no template defines permission_key
            UpstreamUnavailableError: the fetch failed or timed out
        """
        cache_key = (org_id, permission_key)
        now = self._clock()
        entry = self._entries.get(cache_key)

        if entry is not None and self._is_fresh(entry, org_id, permission_key, now):
            self._stats.hits += 1
            return entry.value

        self._stats.misses += 1
        flight = self._in_flight.get(cache_key)
        if flight is None:
            flight = self._start_flight(cache_key)
        elif entry is not None and now - flight.started_at < self._stale_window:
            self._stats.stale_serves += 1
            logger.debug(
                "Serving stale permission during refresh",
                extra={
                    "org_id": org_id,
                    "permission_key": permission_key,
                    "generation": entry.value.generation,
                },
            )
            return entry.value

        return await asyncio.shield(flight.task)

    def _start_flight(self, cache_key: CacheKey) -> _Flight:
        flight = _Flight(started_at=self._clock())
        flight.task = asyncio.ensure_future(self._fetch(cache_key, flight))
        flight.task.add_done_callback(_retrieve_exception)
        self._in_flight[cache_key] = flight
        return flight

    async def _fetch(self, cache_key: CacheKey, flight: _Flight) -> EffectivePermission:
        org_id, permission_key = cache_key
        self._stats.fetches += 1
        try:
            value = await call_upstream(
                "permission_fetch",
                self._timeout,
                self._store.fetch_effective,
                org_id,
                permission_key,
            )
            self._put(cache_key, value)
            return value
        finally:
            if self._in_flight.get(cache_key) is flight:
                del self._in_flight[cache_key]

    def _put(self, cache_key: CacheKey, value: EffectivePermission) -> None:
        existing = self._entries.get(cache_key)
        if existing is not None and existing.value.generation > value.generation:
            return
        self._entries[cache_key] = _CacheEntry(value=value, stored_at=self._clock())
        self._entries.move_to_end(cache_key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
            self._stats.evictions += 1

    async def get_all(self, org_id: str) -> Dict[str, EffectivePermission]:
        """Bulk-resolve every permission for an org and prime the cache with the results."""
        values = await call_upstream(
            "permission_fetch",
            self._timeout,
            self._store.fetch_all_effective,
            org_id,
        )
        self._stats.fetches += 1
        for permission_key, value in values.items():
            self._put((org_id, permission_key), value)
        return values

    def invalidate(self, org_id: str, permission_key: Optional[str] = None) -> int:
        """
        Advance the store generation and drop matching entries.

        In-flight fetches for the dropped keys are detached so the next
        request starts a fresh fetch instead of joining an outdated one.
        """
        generation = self._store.invalidate(org_id, permission_key)
        if permission_key is not None:
            targets = [(org_id, permission_key)]
        else:
            targets = [k for k in list(self._entries) + list(self._in_flight) if k[0] == org_id]
        for cache_key in targets:
            self._entries.pop(cache_key, None)
            self._in_flight.pop(cache_key, None)
        return generation

    def invalidate_templates(self) -> int:
        generation = self._store.invalidate_templates()
        self.clear()
        return generation

    def clear(self) -> None:
        self._entries.clear()
        self._in_flight.clear()

    def stats(self) -> dict:
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "fetches": self._stats.fetches,
            "stale_serves": self._stats.stale_serves,
            "evictions": self._stats.evictions,
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
        }
