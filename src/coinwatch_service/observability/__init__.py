"""
Observability helpers (metrics, logging instrumentation, etc.).
"""

from .prometheus import (
    PROMETHEUS_CONTENT_TYPE,
    generate_prometheus_metrics,
    record_analysis_attempt,
    record_cache_request,
    record_market_data_fetch,
    reset_prometheus_metrics,
    update_cache_entries,
)

__all__ = [
    "PROMETHEUS_CONTENT_TYPE",
    "generate_prometheus_metrics",
    "record_analysis_attempt",
    "record_cache_request",
    "record_market_data_fetch",
    "reset_prometheus_metrics",
    "update_cache_entries",
]
