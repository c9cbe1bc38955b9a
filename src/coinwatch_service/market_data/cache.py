from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, Protocol

from ..observability import record_cache_request, update_cache_entries
from .errors import FetchFailed
from .models import CacheEntry, CacheStats, MarketSnapshot, RefreshSummary
from .symbols import resolve_asset_id

DEFAULT_TTL_SECONDS = 12 * 3600.0
DEFAULT_STALE_SECONDS = 18 * 3600.0


class MarketDataFetcher(Protocol):
    async def fetch(self, symbol_or_id: str) -> MarketSnapshot:
        ...


class MarketDataCache:
    """
    Time-expiring market data cache keyed by CoinGecko asset id.

    Each key owns an ``asyncio.Lock`` so at most one upstream fetch per key is in
    flight; concurrent callers for the same key wait on that lock and then read
    the entry it produced. Unrelated keys never wait on each other. Plain dict
    reads and writes happen between awaits, so the store itself needs no lock.
    """

    def __init__(
        self,
        fetcher: MarketDataFetcher,
        *,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        refresh_delay_seconds: float = 1.2,
        stale_after_seconds: float = DEFAULT_STALE_SECONDS,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._default_ttl_seconds = default_ttl_seconds
        self._refresh_delay_seconds = refresh_delay_seconds
        self._stale_after_seconds = stale_after_seconds
        self._clock = clock or time.time
        self._sleep = sleep or asyncio.sleep
        self._entries: Dict[str, CacheEntry] = {}
        self._key_locks: Dict[str, asyncio.Lock] = {}
        self._logger = logging.getLogger("coinwatch.market_data.cache")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and resolve_asset_id(key) in self._entries

    @property
    def default_ttl_seconds(self) -> float:
        return self._default_ttl_seconds

    def peek(self, key: str) -> CacheEntry | None:
        """Return the stored entry for ``key`` without fetching, fresh or not."""
        return self._entries.get(resolve_asset_id(key))

    async def get(self, key: str, ttl_seconds: float | None = None) -> MarketSnapshot:
        """
        Return the cached snapshot when younger than ``ttl_seconds``, otherwise
        fetch synchronously and replace the entry. A failed fetch raises
        ``FetchFailed``; no stale value is returned from this path.
        """
        asset_id = resolve_asset_id(key)
        ttl = self._default_ttl_seconds if ttl_seconds is None else ttl_seconds

        entry = self._fresh_entry(asset_id, ttl)
        if entry is not None:
            return self._hit(entry)

        async with self._lock_for(asset_id):
            # another caller may have filled the entry while we waited
            entry = self._fresh_entry(asset_id, ttl)
            if entry is not None:
                return self._hit(entry)
            record_cache_request("miss")
            self._logger.info("Cache miss/expired for %s - fetching fresh data", asset_id)
            snapshot = await self._fetch(asset_id)
            self._store(asset_id, snapshot)
            self._logger.info("Cached fresh data for %s", asset_id)
            return snapshot

    async def force_refresh(self, key: str) -> bool:
        """
        Fetch ``key`` unconditionally and replace its entry.

        Returns ``False`` when the fetch fails, leaving any previous entry untouched.
        """
        asset_id = resolve_asset_id(key)
        async with self._lock_for(asset_id):
            self._logger.info("Refreshing cache for %s", asset_id)
            try:
                snapshot = await self._fetch(asset_id)
            except FetchFailed as exc:
                self._logger.error("Failed to refresh cache for %s: %s", asset_id, exc)
                return False
            self._store(asset_id, snapshot)
            self._logger.info("Successfully refreshed cache for %s", asset_id)
            return True

    async def refresh_all(self, keys: Iterable[str]) -> RefreshSummary:
        """Refresh ``keys`` one at a time with a fixed delay between upstream calls."""
        key_list = list(keys)
        summary = RefreshSummary(total=len(key_list))
        self._logger.info("Refreshing cache for %s assets", summary.total)
        for index, key in enumerate(key_list):
            if index:
                await self._sleep(self._refresh_delay_seconds)
            if await self.force_refresh(key):
                summary.succeeded.append(key)
            else:
                summary.failed.append(key)
        self._logger.info(
            "Cache refresh completed. Success: %s, Failed: %s, Total: %s",
            summary.success_count,
            summary.failure_count,
            summary.total,
        )
        return summary

    async def cleanup_expired(self, ttl_seconds: float | None = None) -> int:
        ttl = self._default_ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.age_seconds(now) > ttl]
        for key in expired:
            self._entries.pop(key, None)
        update_cache_entries(len(self._entries))
        if expired:
            self._logger.info("Cleaned up %s expired cache entries", len(expired))
        return len(expired)

    async def clear(self) -> int:
        cleared = len(self._entries)
        self._entries.clear()
        update_cache_entries(0)
        self._logger.info("Cleared %s cache entries", cleared)
        return cleared

    def stats(self) -> CacheStats:
        now = self._clock()
        expired = sum(
            1 for entry in self._entries.values() if entry.age_seconds(now) > self._stale_after_seconds
        )
        total = len(self._entries)
        return CacheStats(total=total, fresh=total - expired, expired=expired)

    def _fresh_entry(self, asset_id: str, ttl_seconds: float) -> CacheEntry | None:
        entry = self._entries.get(asset_id)
        if entry is None or not entry.is_fresh(self._clock(), ttl_seconds):
            return None
        return entry

    def _hit(self, entry: CacheEntry) -> MarketSnapshot:
        record_cache_request("hit")
        self._logger.debug("Using cached data for %s (cached at: %.0f)", entry.key, entry.cached_at)
        return entry.value

    async def _fetch(self, asset_id: str) -> MarketSnapshot:
        try:
            return await self._fetcher.fetch(asset_id)
        except FetchFailed:
            raise
        except Exception as exc:
            raise FetchFailed(asset_id, f"Failed to fetch market data for {asset_id}: {exc}") from exc

    def _store(self, asset_id: str, snapshot: MarketSnapshot) -> None:
        self._entries[asset_id] = CacheEntry(key=asset_id, value=snapshot, cached_at=self._clock())
        update_cache_entries(len(self._entries))

    def _lock_for(self, asset_id: str) -> asyncio.Lock:
        lock = self._key_locks.get(asset_id)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[asset_id] = lock
        return lock


__all__ = ["MarketDataCache", "MarketDataFetcher", "DEFAULT_TTL_SECONDS", "DEFAULT_STALE_SECONDS"]
