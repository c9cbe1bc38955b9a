from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Sequence
from zoneinfo import ZoneInfo

from ..config import Settings, get_settings
from ..holdings import load_holdings
from ..market_data.cache import MarketDataCache

Sleeper = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]


@dataclass(slots=True)
class MaintenanceJobStatus:
    job_id: str
    last_run_at: datetime | None = None
    last_duration_seconds: float | None = None
    last_error: str | None = None
    next_run_at: datetime | None = None
    runs: int = 0
    consecutive_failures: int = 0
    last_result: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_duration_seconds": self.last_duration_seconds,
            "last_error": self.last_error,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "runs": self.runs,
            "consecutive_failures": self.consecutive_failures,
            "last_result": dict(self.last_result),
        }


def next_daily_run(now: datetime, *, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    """Next wall-clock occurrence of ``hour:minute`` in ``tz`` strictly after ``now``."""
    local_now = now.astimezone(tz)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = (candidate + timedelta(days=1)).replace(hour=hour, minute=minute)
    return candidate


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _MaintenanceJob:
    """Background task that runs one cache maintenance job on its own schedule."""

    job_id = "maintenance"
    task_name = "cache-maintenance"

    def __init__(self, *, clock: Clock | None = None, sleep: Sleeper | None = None) -> None:
        self._clock = clock or _utcnow
        self._sleep = sleep or asyncio.sleep
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._run_lock = asyncio.Lock()
        self.status = MaintenanceJobStatus(job_id=self.job_id)
        self.logger = logging.getLogger(f"coinwatch.scheduler.{self.job_id}")

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.status.next_run_at = self._next_run_at(self._clock())
        self._task = asyncio.create_task(self._run_loop(), name=self.task_name)
        self.logger.info("%s scheduler started (next run %s)", self.job_id, self.status.next_run_at)

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:  # pragma: no cover - expected on shutdown
                pass
        self._task = None
        self.logger.info("%s scheduler stopped", self.job_id)

    async def trigger_once(self) -> dict[str, Any]:
        await self.run_cycle()
        return dict(self.status.last_result)

    async def _run_loop(self) -> None:
        served: datetime | None = None
        while self._running:
            # the next slot is strictly after the one just served
            now = self._clock()
            next_run = self._next_run_at(now if served is None else max(now, served))
            self.status.next_run_at = next_run
            wait_seconds = max((next_run - self._clock()).total_seconds(), 0.0)
            await self._sleep(wait_seconds)
            if not self._running:
                break
            served = next_run
            await self.run_cycle()

    async def run_cycle(self) -> None:
        async with self._run_lock:
            start = self._clock()
            self.status.runs += 1
            try:
                self.status.last_result = await self._execute()
                self.status.last_error = None
                self.status.consecutive_failures = 0
            except Exception as exc:
                self.status.last_error = str(exc)
                self.status.consecutive_failures += 1
                self.logger.exception("%s job failed: %s", self.job_id, exc)
            finally:
                self.status.last_run_at = start
                self.status.last_duration_seconds = (self._clock() - start).total_seconds()

    def _next_run_at(self, now: datetime) -> datetime:
        raise NotImplementedError

    async def _execute(self) -> dict[str, Any]:
        raise NotImplementedError


class DailyRefreshScheduler(_MaintenanceJob):
    """Refreshes every holding in the cache once a day at a fixed local time."""

    job_id = "daily-refresh"
    task_name = "market-data-daily-refresh"

    def __init__(
        self,
        cache: MarketDataCache,
        *,
        keys_provider: Callable[[], Sequence[str]],
        hour: int = 1,
        minute: int = 0,
        tz: str = "Asia/Ho_Chi_Minh",
        clock: Clock | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        super().__init__(clock=clock, sleep=sleep)
        self._cache = cache
        self._keys_provider = keys_provider
        self._hour = hour
        self._minute = minute
        self._tz = ZoneInfo(tz)

    @classmethod
    def from_settings(
        cls,
        cache: MarketDataCache,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> "DailyRefreshScheduler":
        settings = settings or get_settings()
        return cls(
            cache,
            keys_provider=lambda: holdings_keys(settings),
            hour=settings.market_data_refresh_hour,
            minute=settings.market_data_refresh_minute,
            tz=settings.scheduler_timezone,
            **kwargs,
        )

    def _next_run_at(self, now: datetime) -> datetime:
        return next_daily_run(now, hour=self._hour, minute=self._minute, tz=self._tz)

    async def _execute(self) -> dict[str, Any]:
        keys = list(self._keys_provider())
        self.logger.info("Starting scheduled cache refresh for %s holdings", len(keys))
        summary = await self._cache.refresh_all(keys)
        return summary.as_dict()


class CleanupScheduler(_MaintenanceJob):
    """Sweeps expired cache entries on a fixed interval."""

    job_id = "cleanup"
    task_name = "market-data-cleanup"

    def __init__(
        self,
        cache: MarketDataCache,
        *,
        interval_seconds: float = 6 * 3600.0,
        ttl_seconds: float | None = None,
        clock: Clock | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        super().__init__(clock=clock, sleep=sleep)
        self._cache = cache
        self._interval = timedelta(seconds=interval_seconds)
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(
        cls,
        cache: MarketDataCache,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> "CleanupScheduler":
        settings = settings or get_settings()
        return cls(
            cache,
            interval_seconds=settings.market_data_cleanup_interval_hours * 3600.0,
            ttl_seconds=settings.market_data_cache_ttl_seconds,
            **kwargs,
        )

    def _next_run_at(self, now: datetime) -> datetime:
        return now + self._interval

    async def _execute(self) -> dict[str, Any]:
        self.logger.info("Running scheduled cleanup of expired entries")
        removed = await self._cache.cleanup_expired(self._ttl_seconds)
        return {"removed": removed, "remaining": len(self._cache)}


def holdings_keys(settings: Settings) -> list[str]:
    """Asset ids to refresh: the configured override list, else the holdings file."""
    explicit = settings.resolved_refresh_ids()
    if explicit:
        return list(explicit)
    return load_holdings(settings.holdings_path).asset_ids()


__all__ = [
    "CleanupScheduler",
    "DailyRefreshScheduler",
    "MaintenanceJobStatus",
    "holdings_keys",
    "next_daily_run",
]
