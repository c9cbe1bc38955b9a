from __future__ import annotations

import threading

import httpx
import pytest
from fastapi.testclient import TestClient

from coinwatch_service import main
from coinwatch_service.llm import AnalysisClientConfig, GeminiAnalysisClient
from coinwatch_service.market_data import FetchFailed, MarketDataCache, MarketSnapshot, TechnicalIndicators
from coinwatch_service.persistence import AnalysisSnapshotStore
from coinwatch_service.runtime import ServiceRuntime, set_runtime
from coinwatch_service.schedulers import CleanupScheduler, DailyRefreshScheduler

PREFIX = "/internal/coinwatch/v1"
PRIMARY = "https://llm.mock/primary"
FALLBACK = "https://llm.mock/fallback"


class FakeFetcher:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.failing: set[str] = set()

    async def fetch(self, symbol_or_id: str) -> MarketSnapshot:
        self.calls.append(symbol_or_id)
        if symbol_or_id in self.failing:
            raise FetchFailed(symbol_or_id, f"No data found for {symbol_or_id}")
        return MarketSnapshot(
            symbol=symbol_or_id,
            current_price=65000.5,
            price_change_24h_pct=2.1,
            prices=(1.0, 2.0, 3.0),
            indicators=TechnicalIndicators(sma20=64000.0),
        )


async def _no_sleep(_seconds: float) -> None:
    return None


def _analysis_client(handler) -> GeminiAnalysisClient:
    return GeminiAnalysisClient(
        config=AnalysisClientConfig(api_key="k", primary_url=PRIMARY, fallback_url=FALLBACK),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=_no_sleep,
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def runtime(tmp_path, fetcher):
    cache = MarketDataCache(fetcher, refresh_delay_seconds=0.0, sleep=_no_sleep)

    def _llm(request: httpx.Request) -> httpx.Response:
        text = '{"action": "HOLD", "confidence": 0.6}'
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})

    service = ServiceRuntime(
        cache=cache,
        analysis_client=_analysis_client(_llm),
        snapshot_store=AnalysisSnapshotStore(tmp_path / "snapshots.json"),
        refresh_scheduler=DailyRefreshScheduler(cache, keys_provider=lambda: ["bitcoin", "solana"]),
        cleanup_scheduler=CleanupScheduler(cache),
    )
    set_runtime(service)
    yield service
    set_runtime(None)


def test_routes_unavailable_before_startup() -> None:
    set_runtime(None)
    client = TestClient(main.app)

    response = client.get(f"{PREFIX}/market/BTC")

    assert response.status_code == 503


def test_get_market_data_is_cached(runtime, fetcher) -> None:
    client = TestClient(main.app)

    first = client.get(f"{PREFIX}/market/BTC")
    second = client.get(f"{PREFIX}/market/bitcoin", params={"include_prices": "true"})

    assert first.status_code == 200
    body = first.json()
    assert body["symbol"] == "bitcoin"
    assert body["current_price"] == 65000.5
    assert body["indicators"]["sma20"] == 64000.0
    assert body["indicators"]["rsi14"] is None
    assert "prices" not in body
    assert second.json()["prices"] == [1.0, 2.0, 3.0]
    assert fetcher.calls == ["bitcoin"]


def test_fetch_failure_maps_to_bad_gateway(runtime, fetcher) -> None:
    fetcher.failing.add("polkadot")
    client = TestClient(main.app)

    response = client.get(f"{PREFIX}/market/DOT")
    refresh = client.post(f"{PREFIX}/market/DOT/refresh")

    assert response.status_code == 502
    assert "polkadot" in response.json()["detail"]
    assert refresh.status_code == 502


def test_cache_management_endpoints(runtime) -> None:
    client = TestClient(main.app)

    refreshed = client.post(f"{PREFIX}/cache/refresh")
    assert refreshed.status_code == 200
    assert refreshed.json() == {"total": 2, "success": 2, "failed": 0, "failed_keys": []}

    stats = client.get(f"{PREFIX}/cache/stats").json()
    assert stats["total"] == 2
    assert stats["fresh"] == 2
    assert stats["analysis_snapshots"] == {"total": 0, "today": 0}

    assert client.post(f"{PREFIX}/market/SOL/refresh").json()["refreshed"] is True
    assert client.post(f"{PREFIX}/cache/cleanup").json() == {"removed": 0, "remaining": 2}
    assert client.delete(f"{PREFIX}/cache").json() == {"cleared": 2}

    jobs = client.get(f"{PREFIX}/schedulers").json()["jobs"]
    assert [job["job_id"] for job in jobs] == ["daily-refresh", "cleanup"]
    assert jobs[0]["runs"] == 1
    assert jobs[0]["is_running"] is False


def test_analysis_endpoint_stores_summary(runtime) -> None:
    client = TestClient(main.app)

    response = client.post(f"{PREFIX}/analysis", json={"prompt": "Assess BTC", "symbol": "BTC"})

    assert response.status_code == 200
    body = response.json()
    assert body["outcome"] == "ok"
    assert body["endpoint"] == "primary"
    assert body["attempts"] == 1

    cached = client.get(f"{PREFIX}/analysis/bitcoin")
    assert cached.status_code == 200
    assert cached.json() == {"action": "HOLD", "confidence": 0.6}
    assert client.get(f"{PREFIX}/analysis/ETH").status_code == 404


def test_analysis_endpoint_reports_exhaustion(runtime) -> None:
    def _down(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="UNAVAILABLE")

    runtime.analysis_client = _analysis_client(_down)
    client = TestClient(main.app)

    body = client.post(f"{PREFIX}/analysis", json={"prompt": "Assess ETH", "symbol": "ETH"}).json()

    assert body["outcome"] == "retries_exhausted"
    assert body["text"] == "{}"
    assert body["attempts"] == 3
    assert runtime.snapshot_store.get("ethereum") is None


class ThreadRecordingStore(AnalysisSnapshotStore):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.put_threads: list[int] = []

    def put(self, symbol, summary) -> None:
        self.put_threads.append(threading.get_ident())
        super().put(symbol, summary)


def test_analysis_snapshot_is_written_off_the_event_loop(runtime, tmp_path) -> None:
    loop_threads: list[int] = []

    def _llm(request: httpx.Request) -> httpx.Response:
        loop_threads.append(threading.get_ident())
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": '{"action": "BUY"}'}]}}]})

    runtime.analysis_client = _analysis_client(_llm)
    runtime.snapshot_store = ThreadRecordingStore(tmp_path / "threaded.json")
    client = TestClient(main.app)

    response = client.post(f"{PREFIX}/analysis", json={"prompt": "Assess SOL", "symbol": "SOL"})

    assert response.status_code == 200
    assert runtime.snapshot_store.get("solana") == {"action": "BUY"}
    assert len(runtime.snapshot_store.put_threads) == 1
    assert loop_threads and runtime.snapshot_store.put_threads[0] != loop_threads[0]
