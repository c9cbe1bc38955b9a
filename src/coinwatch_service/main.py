from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Response

from .api import api_router
from .config import Settings, get_settings
from .llm import AnalysisClientConfig, GeminiAnalysisClient
from .market_data import MarketDataCache
from .observability import PROMETHEUS_CONTENT_TYPE, generate_prometheus_metrics
from .persistence import AnalysisSnapshotStore
from .providers import CoinGeckoConfig, CoinGeckoFetcher
from .runtime import ServiceRuntime, get_runtime, set_runtime
from .schedulers import CleanupScheduler, DailyRefreshScheduler


def build_runtime(settings: Settings) -> ServiceRuntime:
    fetcher = CoinGeckoFetcher(CoinGeckoConfig.from_settings(settings))
    cache = MarketDataCache(
        fetcher,
        default_ttl_seconds=settings.market_data_cache_ttl_seconds,
        refresh_delay_seconds=settings.market_data_refresh_delay_seconds,
        stale_after_seconds=settings.market_data_stats_stale_hours * 3600.0,
    )
    runtime = ServiceRuntime(
        cache=cache,
        fetcher=fetcher,
        analysis_client=GeminiAnalysisClient(config=AnalysisClientConfig.from_settings(settings)),
        snapshot_store=AnalysisSnapshotStore(settings.analysis_snapshot_path),
    )
    if settings.schedulers_enabled:
        runtime.refresh_scheduler = DailyRefreshScheduler.from_settings(cache, settings)
        runtime.cleanup_scheduler = CleanupScheduler.from_settings(cache, settings)
    return runtime


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger = logging.getLogger(settings.service_name)
    logger.info("Starting %s", settings.service_name)

    runtime = build_runtime(settings)
    if runtime.snapshot_store is not None:
        runtime.snapshot_store.load()
    await runtime.start()
    set_runtime(runtime)
    if runtime.schedulers():
        logger.info("Cache maintenance schedulers started")
    else:
        logger.info("Cache maintenance schedulers disabled")
    try:
        yield
    finally:
        logger.info("Stopping %s - shutting down schedulers", settings.service_name)
        set_runtime(None)
        await runtime.stop()
        logger.info("%s stopped successfully", settings.service_name)


settings = get_settings()

log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
log_path = Path(settings.log_dir or "logs")
log_path.mkdir(parents=True, exist_ok=True)
file_handler = logging.FileHandler(log_path / "coinwatch_service.log")
file_handler.setFormatter(
    logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
)
root_logger = logging.getLogger()
root_logger.setLevel(log_level)
root_logger.addHandler(file_handler)
app = FastAPI(title="Coinwatch Market Data Service", lifespan=lifespan)
app.include_router(api_router, prefix="/internal/coinwatch")


@app.get("/metrics")
async def prometheus_metrics() -> Response:
    payload = generate_prometheus_metrics()
    return Response(content=payload, media_type=PROMETHEUS_CONTENT_TYPE)


@app.get("/healthz")
async def healthz() -> dict[str, object]:
    runtime = get_runtime()
    if runtime is None:
        return {"status": "ok", "cache": None, "schedulers": []}
    return {
        "status": "ok",
        "cache": runtime.cache.stats().as_dict(),
        "schedulers": [
            {"job_id": scheduler.job_id, "is_running": scheduler.is_running}
            for scheduler in runtime.schedulers()
        ],
    }
