"""Background cache maintenance jobs."""

from .cache_maintenance import (
    CleanupScheduler,
    DailyRefreshScheduler,
    MaintenanceJobStatus,
    holdings_keys,
    next_daily_run,
)

__all__ = [
    "CleanupScheduler",
    "DailyRefreshScheduler",
    "MaintenanceJobStatus",
    "holdings_keys",
    "next_daily_run",
]
