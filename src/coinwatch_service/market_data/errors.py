from __future__ import annotations


class MarketDataError(RuntimeError):
    """Base class for market data retrieval failures."""


class FetchFailed(MarketDataError):
    """Raised when market data for an asset could not be fetched."""

    def __init__(self, asset_id: str, message: str | None = None) -> None:
        self.asset_id = asset_id
        super().__init__(message or f"Failed to fetch market data for {asset_id}")


class UpstreamUnavailable(FetchFailed):
    """The provider returned no usable price data for the requested id."""

    def __init__(self, asset_id: str, message: str | None = None) -> None:
        super().__init__(asset_id, message or f"No data found for {asset_id}")


class NoHistoricalData(FetchFailed):
    """The provider history response did not contain a prices array."""

    def __init__(self, asset_id: str, message: str | None = None) -> None:
        super().__init__(asset_id, message or f"No prices array found for {asset_id}")


__all__ = ["MarketDataError", "FetchFailed", "UpstreamUnavailable", "NoHistoricalData"]
