from __future__ import annotations

from typing import Literal

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

PROMETHEUS_CONTENT_TYPE = CONTENT_TYPE_LATEST

CacheResult = Literal["hit", "miss"]
FetchStatus = Literal["success", "failure"]
AttemptOutcome = Literal["success", "empty", "failure"]


def _build_registry() -> tuple[CollectorRegistry, Counter, Counter, Counter, Gauge]:
    registry = CollectorRegistry()
    cache_counter = Counter(
        "market_data_cache_requests_total",
        "Market data cache lookups grouped by hit/miss",
        labelnames=("result",),
        registry=registry,
    )
    fetch_counter = Counter(
        "market_data_fetches_total",
        "Upstream market data fetches grouped by status",
        labelnames=("status",),
        registry=registry,
    )
    analysis_counter = Counter(
        "analysis_attempts_total",
        "Analysis provider attempts grouped by endpoint and outcome",
        labelnames=("endpoint", "outcome"),
        registry=registry,
    )
    entries_gauge = Gauge(
        "market_data_cache_entries",
        "Number of entries currently held by the market data cache",
        registry=registry,
    )
    return registry, cache_counter, fetch_counter, analysis_counter, entries_gauge


_registry, _cache_counter, _fetch_counter, _analysis_counter, _entries_gauge = _build_registry()


def record_cache_request(result: CacheResult) -> None:
    _cache_counter.labels(result=result).inc()


def record_market_data_fetch(status: FetchStatus) -> None:
    _fetch_counter.labels(status=status).inc()


def record_analysis_attempt(endpoint: str, outcome: AttemptOutcome) -> None:
    _analysis_counter.labels(endpoint=endpoint, outcome=outcome).inc()


def update_cache_entries(count: int) -> None:
    try:
        value = float(count)
    except (TypeError, ValueError):
        return
    _entries_gauge.set(value)


def generate_prometheus_metrics() -> bytes:
    return generate_latest(_registry)


def reset_prometheus_metrics() -> None:
    global _registry, _cache_counter, _fetch_counter, _analysis_counter, _entries_gauge
    _registry, _cache_counter, _fetch_counter, _analysis_counter, _entries_gauge = _build_registry()
