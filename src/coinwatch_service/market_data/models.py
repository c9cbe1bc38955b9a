from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Tuple


PriceSeries = Tuple[float, ...]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class TechnicalIndicators:
    """Indicator values derived from a daily price series; ``None`` means not enough data."""

    sma20: float | None = None
    sma50: float | None = None
    sma200: float | None = None
    rsi14: float | None = None
    macd: float | None = None
    macd_signal: float | None = None

    def as_dict(self) -> dict[str, float | None]:
        return {
            "sma20": self.sma20,
            "sma50": self.sma50,
            "sma200": self.sma200,
            "rsi14": self.rsi14,
            "macd": self.macd,
            "macd_signal": self.macd_signal,
        }


@dataclass(slots=True, frozen=True)
class MarketSnapshot:
    symbol: str
    current_price: float
    price_change_24h_pct: float = 0.0
    volume_24h: float = 0.0
    market_cap: float = 0.0
    prices: PriceSeries = ()
    indicators: TechnicalIndicators = field(default_factory=TechnicalIndicators)
    fetched_at: datetime = field(default_factory=_now)

    def as_dict(self, *, include_prices: bool = False) -> dict[str, object]:
        payload: dict[str, object] = {
            "symbol": self.symbol,
            "current_price": self.current_price,
            "price_change_24h_pct": self.price_change_24h_pct,
            "volume_24h": self.volume_24h,
            "market_cap": self.market_cap,
            "indicators": self.indicators.as_dict(),
            "history_points": len(self.prices),
            "fetched_at": self.fetched_at.isoformat(),
        }
        if include_prices:
            payload["prices"] = list(self.prices)
        return payload


@dataclass(slots=True, frozen=True)
class CacheEntry:
    key: str
    value: MarketSnapshot
    cached_at: float

    def age_seconds(self, now: float) -> float:
        return now - self.cached_at

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return self.age_seconds(now) < ttl_seconds


@dataclass(slots=True)
class CacheStats:
    total: int
    fresh: int
    expired: int

    def as_dict(self) -> dict[str, int]:
        return {"total": self.total, "fresh": self.fresh, "expired": self.expired}


@dataclass(slots=True)
class RefreshSummary:
    total: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def as_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "success": self.success_count,
            "failed": self.failure_count,
            "failed_keys": list(self.failed),
        }


__all__ = [
    "PriceSeries",
    "TechnicalIndicators",
    "MarketSnapshot",
    "CacheEntry",
    "CacheStats",
    "RefreshSummary",
]
