from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..market_data import FetchFailed, resolve_asset_id
from ..runtime import ServiceRuntime, get_runtime

router = APIRouter()


class AnalysisRequest(BaseModel):
    prompt: str = Field(min_length=1)
    symbol: str | None = None


def require_runtime() -> ServiceRuntime:
    runtime = get_runtime()
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not initialized")
    return runtime


def _parse_summary(text: str) -> dict[str, object] | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/market/{symbol}")
async def get_market_data(
    symbol: str,
    include_prices: bool = False,
    runtime: ServiceRuntime = Depends(require_runtime),
) -> dict[str, object]:
    try:
        snapshot = await runtime.cache.get(symbol)
    except FetchFailed as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return snapshot.as_dict(include_prices=include_prices)


@router.post("/market/{symbol}/refresh")
async def refresh_market_data(
    symbol: str,
    runtime: ServiceRuntime = Depends(require_runtime),
) -> dict[str, object]:
    refreshed = await runtime.cache.force_refresh(symbol)
    if not refreshed:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to refresh market data for {symbol}",
        )
    entry = runtime.cache.peek(symbol)
    return {"refreshed": True, "data": entry.value.as_dict() if entry else None}


@router.get("/cache/stats")
async def cache_stats(runtime: ServiceRuntime = Depends(require_runtime)) -> dict[str, object]:
    payload: dict[str, object] = dict(runtime.cache.stats().as_dict())
    if runtime.snapshot_store is not None:
        payload["analysis_snapshots"] = runtime.snapshot_store.stats()
    return payload


@router.post("/cache/refresh")
async def refresh_cache(runtime: ServiceRuntime = Depends(require_runtime)) -> dict[str, object]:
    if runtime.refresh_scheduler is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Daily refresh is not configured")
    result = await runtime.refresh_scheduler.trigger_once()
    last_error = runtime.refresh_scheduler.status.last_error
    if last_error:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=last_error)
    return result


@router.post("/cache/cleanup")
async def cleanup_cache(runtime: ServiceRuntime = Depends(require_runtime)) -> dict[str, int]:
    removed = await runtime.cache.cleanup_expired()
    return {"removed": removed, "remaining": len(runtime.cache)}


@router.delete("/cache")
async def clear_cache(runtime: ServiceRuntime = Depends(require_runtime)) -> dict[str, int]:
    cleared = await runtime.cache.clear()
    return {"cleared": cleared}


@router.get("/schedulers")
async def scheduler_status(runtime: ServiceRuntime = Depends(require_runtime)) -> dict[str, object]:
    return {
        "jobs": [
            {**scheduler.status.as_dict(), "is_running": scheduler.is_running}
            for scheduler in runtime.schedulers()
        ]
    }


@router.post("/analysis")
async def run_analysis(
    payload: AnalysisRequest,
    runtime: ServiceRuntime = Depends(require_runtime),
) -> dict[str, object]:
    if runtime.analysis_client is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Analysis client is not configured")
    result = await runtime.analysis_client.call_detailed(payload.prompt)
    if result.ok and payload.symbol and runtime.snapshot_store is not None:
        summary = _parse_summary(result.text)
        if summary is not None:
            await asyncio.to_thread(runtime.snapshot_store.put, resolve_asset_id(payload.symbol), summary)
    return {
        "outcome": result.outcome,
        "text": result.text,
        "endpoint": result.endpoint,
        "attempts": len(result.attempts),
        "latency_ms": result.latency_ms,
    }


@router.get("/analysis/{symbol}")
async def get_cached_analysis(
    symbol: str,
    runtime: ServiceRuntime = Depends(require_runtime),
) -> dict[str, object]:
    store = runtime.snapshot_store
    summary = store.get(resolve_asset_id(symbol)) if store is not None else None
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No analysis cached today for {symbol}")
    return summary


__all__ = ["AnalysisRequest", "router", "require_runtime"]
