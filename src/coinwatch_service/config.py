from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COINWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    service_name: str = "coinwatch-service"
    service_port: int = 8086
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    log_dir: str | None = "logs"

    # CoinGecko market data
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str | None = None
    coingecko_timeout_seconds: float = 15.0
    coingecko_history_days: int = 200
    coingecko_request_delay_seconds: float = 1.0

    # Market data cache
    market_data_cache_ttl_hours: float = 12.0
    market_data_refresh_delay_seconds: float = 1.2
    market_data_refresh_hour: int = 1
    market_data_refresh_minute: int = 0
    market_data_cleanup_interval_hours: float = 6.0
    market_data_stats_stale_hours: float = 18.0
    scheduler_timezone: str = "Asia/Ho_Chi_Minh"
    schedulers_enabled: bool = True

    holdings_path: str = "holdings.json"
    holdings_ids: list[str] | None = None

    macd_signal_mode: Literal["legacy", "ema"] = "legacy"

    # Analysis provider (Gemini style generateContent endpoints)
    llm_api_key: str | None = None
    llm_primary_url: str = (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"
    )
    llm_fallback_url: str = (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
    )
    llm_timeout_seconds: float = 30.0
    llm_retry_delay_seconds: float = 1.0
    llm_primary_attempts: int = 2
    llm_fallback_attempts: int = 1

    analysis_snapshot_path: str = "cache/investment-analysis-cache.json"

    @property
    def market_data_cache_ttl_seconds(self) -> float:
        return self.market_data_cache_ttl_hours * 3600.0

    def resolved_refresh_ids(self) -> list[str] | None:
        """
        Return the explicit list of asset ids for the daily refresh, if configured.
        When ``None`` the holdings file is consulted instead.
        """
        return self.holdings_ids or None


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
