from __future__ import annotations

import httpx
import pytest

from coinwatch_service.indicators import IndicatorCalculations
from coinwatch_service.market_data import FetchFailed, NoHistoricalData, UpstreamUnavailable
from coinwatch_service.providers import CoinGeckoConfig, CoinGeckoFetcher


class _CoinGeckoServer:
    def __init__(self, *, price_payload=None, history_payload=None, price_status: int = 200) -> None:
        self.price_payload = price_payload
        self.history_payload = history_payload
        self.price_status = price_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/simple/price"):
            return httpx.Response(self.price_status, json=self.price_payload)
        if path.endswith("/market_chart"):
            return httpx.Response(200, json=self.history_payload)
        return httpx.Response(404)


def _history(count: int = 200) -> dict[str, object]:
    start_ms = 1_700_000_000_000
    return {"prices": [[start_ms + index * 86_400_000, 60_000.0 + index * 25.0] for index in range(count)]}


def _fetcher(server: _CoinGeckoServer, sleeps: list[float]) -> CoinGeckoFetcher:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    config = CoinGeckoConfig(base_url="https://mock.coingecko/api/v3", request_delay_seconds=1.0)
    return CoinGeckoFetcher(config, client, calculations=IndicatorCalculations(), sleep=fake_sleep)


@pytest.mark.asyncio
async def test_fetch_btc_end_to_end() -> None:
    server = _CoinGeckoServer(
        price_payload={"bitcoin": {"usd": 65000.5, "usd_24h_change": 2.1, "usd_24h_vol": 3.2e10}},
        history_payload=_history(200),
    )
    sleeps: list[float] = []
    fetcher = _fetcher(server, sleeps)

    snapshot = await fetcher.fetch("BTC")
    await fetcher.close()

    assert snapshot.symbol == "bitcoin"
    assert snapshot.current_price == 65000.5
    assert snapshot.price_change_24h_pct == 2.1
    assert "price_change_24h" not in snapshot.as_dict()
    assert snapshot.volume_24h == 3.2e10
    assert len(snapshot.prices) == 200
    assert snapshot.prices[0] == 60_000.0
    indicators = snapshot.indicators
    assert indicators.sma20 is not None
    assert indicators.sma50 is not None
    assert indicators.sma200 is not None
    assert indicators.rsi14 is not None

    price_request, history_request = server.requests
    assert price_request.url.params["ids"] == "bitcoin"
    assert price_request.url.params["vs_currencies"] == "usd"
    assert history_request.url.path == "/api/v3/coins/bitcoin/market_chart"
    assert history_request.url.params["days"] == "200"
    assert history_request.url.params["interval"] == "daily"
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_optional_price_fields_default_to_zero() -> None:
    server = _CoinGeckoServer(price_payload={"solana": {"usd": 150.0}}, history_payload=_history(10))
    fetcher = _fetcher(server, [])

    snapshot = await fetcher.fetch("SOL")

    assert snapshot.price_change_24h_pct == 0.0
    assert snapshot.volume_24h == 0.0
    assert snapshot.indicators.sma20 is None


@pytest.mark.asyncio
async def test_missing_asset_key_raises_upstream_unavailable() -> None:
    server = _CoinGeckoServer(price_payload={}, history_payload=_history())
    fetcher = _fetcher(server, [])

    with pytest.raises(UpstreamUnavailable) as excinfo:
        await fetcher.fetch("ETH")

    assert excinfo.value.asset_id == "ethereum"
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_non_numeric_price_raises_upstream_unavailable() -> None:
    server = _CoinGeckoServer(price_payload={"bitcoin": {"usd": "n/a"}}, history_payload=_history())
    fetcher = _fetcher(server, [])

    with pytest.raises(UpstreamUnavailable) as excinfo:
        await fetcher.fetch("BTC")
    await fetcher.close()

    assert excinfo.value.asset_id == "bitcoin"
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_missing_prices_array_raises_no_historical_data() -> None:
    server = _CoinGeckoServer(price_payload={"cardano": {"usd": 0.4}}, history_payload={"market_caps": []})
    fetcher = _fetcher(server, [])

    with pytest.raises(NoHistoricalData):
        await fetcher.fetch("ADA")


@pytest.mark.asyncio
async def test_http_error_is_wrapped_and_not_retried() -> None:
    server = _CoinGeckoServer(price_payload={"status": "rate limited"}, price_status=429)
    fetcher = _fetcher(server, [])

    with pytest.raises(FetchFailed):
        await fetcher.fetch("BTC")

    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_transport_error_is_wrapped() -> None:
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_boom))
    fetcher = CoinGeckoFetcher(CoinGeckoConfig(base_url="https://mock"), client, calculations=IndicatorCalculations())

    with pytest.raises(FetchFailed) as excinfo:
        await fetcher.fetch("bitcoin")

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
