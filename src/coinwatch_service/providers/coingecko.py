from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping

import httpx

from ..config import Settings, get_settings
from ..indicators import IndicatorCalculations
from ..market_data.errors import FetchFailed, NoHistoricalData, UpstreamUnavailable
from ..market_data.models import MarketSnapshot
from ..market_data.symbols import resolve_asset_id
from ..observability import record_market_data_fetch

logger = logging.getLogger("coinwatch.providers.coingecko")

Sleeper = Callable[[float], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _optional_float(payload: Mapping[str, Any], key: str) -> float:
    value = payload.get(key)
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _required_price(asset_id: str, coin_data: Mapping[str, Any]) -> float:
    raw = coin_data.get("usd")
    if raw is None:
        raise UpstreamUnavailable(asset_id, f"No usd price for {asset_id}")
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise UpstreamUnavailable(asset_id, f"Unusable usd price for {asset_id}: {raw!r}") from exc


@dataclass(slots=True)
class CoinGeckoConfig:
    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: str | None = None
    timeout_seconds: float = 15.0
    history_days: int = 200
    request_delay_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoinGeckoConfig":
        return cls(
            base_url=settings.coingecko_base_url.rstrip("/"),
            api_key=settings.coingecko_api_key,
            timeout_seconds=settings.coingecko_timeout_seconds,
            history_days=settings.coingecko_history_days,
            request_delay_seconds=settings.coingecko_request_delay_seconds,
        )


class CoinGeckoFetcher:
    """
    Fetches spot price and daily history for one asset and derives its indicators.

    Two sequential requests are issued per fetch with a fixed courtesy delay in
    between. Failures are not retried here; they surface as ``FetchFailed``.
    """

    def __init__(
        self,
        config: CoinGeckoConfig | None = None,
        client: httpx.AsyncClient | None = None,
        *,
        calculations: IndicatorCalculations | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        settings = get_settings()
        self._config = config or CoinGeckoConfig.from_settings(settings)
        headers = {"User-Agent": "coinwatch-service/0.1", "Accept": "application/json"}
        if self._config.api_key:
            headers["x-cg-demo-api-key"] = self._config.api_key
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_seconds),
            headers=headers,
        )
        self._calculations = calculations or IndicatorCalculations(signal_mode=settings.macd_signal_mode)
        self._sleep = sleep or asyncio.sleep

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch(self, symbol_or_id: str) -> MarketSnapshot:
        asset_id = resolve_asset_id(symbol_or_id)
        try:
            coin_data = await self._fetch_price(asset_id)
            current_price = _required_price(asset_id, coin_data)

            await self._sleep(self._config.request_delay_seconds)

            prices = await self._fetch_history(asset_id)
        except FetchFailed:
            record_market_data_fetch("failure")
            raise

        indicators = self._calculations.compute(prices)
        snapshot = MarketSnapshot(
            symbol=asset_id,
            current_price=current_price,
            price_change_24h_pct=_optional_float(coin_data, "usd_24h_change"),
            volume_24h=_optional_float(coin_data, "usd_24h_vol"),
            prices=tuple(prices),
            indicators=indicators,
            fetched_at=_utcnow(),
        )
        record_market_data_fetch("success")
        logger.info(
            "Fetched market data for %s (price=%s points=%s)",
            asset_id,
            snapshot.current_price,
            len(prices),
        )
        return snapshot

    async def _fetch_price(self, asset_id: str) -> Mapping[str, Any]:
        payload = await self._get_json(
            asset_id,
            "/simple/price",
            {
                "ids": asset_id,
                "vs_currencies": "usd",
                "include_24hr_change": "true",
                "include_24hr_vol": "true",
            },
        )
        coin_data = payload.get(asset_id) if isinstance(payload, Mapping) else None
        if not isinstance(coin_data, Mapping):
            logger.error("No data found for %s in price response: %s", asset_id, payload)
            raise UpstreamUnavailable(asset_id)
        return coin_data

    async def _fetch_history(self, asset_id: str) -> list[float]:
        payload = await self._get_json(
            asset_id,
            f"/coins/{asset_id}/market_chart",
            {
                "vs_currency": "usd",
                "days": str(self._config.history_days),
                "interval": "daily",
            },
        )
        points = payload.get("prices") if isinstance(payload, Mapping) else None
        if points is None:
            logger.error("No prices array found for %s in history response", asset_id)
            raise NoHistoricalData(asset_id)
        prices: list[float] = []
        for point in points:
            try:
                prices.append(float(point[1]))
            except (IndexError, TypeError, ValueError) as exc:
                raise FetchFailed(asset_id, f"Malformed history point for {asset_id}: {point!r}") from exc
        return prices

    async def _get_json(self, asset_id: str, path: str, params: Mapping[str, str]) -> Any:
        url = f"{self._config.base_url}{path}"
        logger.debug("Requesting %s params=%s", url, params)
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise FetchFailed(asset_id, f"Request to {path} failed for {asset_id}: {exc}") from exc
        if response.status_code >= 400:
            raise FetchFailed(
                asset_id,
                f"CoinGecko responded {response.status_code} for {path} ({asset_id})",
            )
        try:
            return response.json()
        except ValueError as exc:
            raise FetchFailed(asset_id, f"Invalid JSON from {path} for {asset_id}") from exc


__all__ = ["CoinGeckoConfig", "CoinGeckoFetcher"]
