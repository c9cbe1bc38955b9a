from __future__ import annotations

from dataclasses import dataclass

from .llm import GeminiAnalysisClient
from .market_data import MarketDataCache
from .persistence import AnalysisSnapshotStore
from .providers import CoinGeckoFetcher
from .schedulers import CleanupScheduler, DailyRefreshScheduler


@dataclass(slots=True)
class ServiceRuntime:
    """Long-lived components owned by the application lifespan."""

    cache: MarketDataCache
    fetcher: CoinGeckoFetcher | None = None
    analysis_client: GeminiAnalysisClient | None = None
    snapshot_store: AnalysisSnapshotStore | None = None
    refresh_scheduler: DailyRefreshScheduler | None = None
    cleanup_scheduler: CleanupScheduler | None = None

    def schedulers(self) -> list[DailyRefreshScheduler | CleanupScheduler]:
        return [s for s in (self.refresh_scheduler, self.cleanup_scheduler) if s is not None]

    async def start(self) -> None:
        for scheduler in self.schedulers():
            await scheduler.start()

    async def stop(self) -> None:
        # schedulers first so no job is mid-flight when the clients close
        for scheduler in reversed(self.schedulers()):
            await scheduler.stop()
        if self.analysis_client is not None:
            await self.analysis_client.close()
        if self.fetcher is not None:
            await self.fetcher.close()


_runtime: ServiceRuntime | None = None


def get_runtime() -> ServiceRuntime | None:
    return _runtime


def set_runtime(runtime: ServiceRuntime | None) -> None:
    global _runtime
    _runtime = runtime


__all__ = ["ServiceRuntime", "get_runtime", "set_runtime"]
