from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Literal

import pandas as pd

from ..market_data.models import TechnicalIndicators

SignalMode = Literal["legacy", "ema"]

logger = logging.getLogger("coinwatch.indicators")


def _to_series(values: Iterable[float]) -> pd.Series:
    return pd.Series(list(values), dtype="float64")


def _ema_series(series: pd.Series, span: int) -> pd.Series:
    if series.empty:
        return series
    return series.ewm(span=span, adjust=False).mean()


def _as_float(value: float) -> float | None:
    if pd.isna(value):
        return None
    return float(value)


@dataclass(slots=True, frozen=True)
class MACDResult:
    macd: float
    signal: float

    @property
    def histogram(self) -> float:
        return self.macd - self.signal


def sma(prices: Iterable[float], period: int) -> float | None:
    """Arithmetic mean of the last ``period`` prices, or ``None`` for a short series."""
    series = _to_series(prices)
    if period <= 0 or len(series) < period:
        return None
    return _as_float(series.tail(period).mean(skipna=False))


def ema(prices: Iterable[float], period: int) -> float | None:
    """
    Exponential moving average over the trailing ``period`` prices.

    The average is seeded with the raw price ``period`` points from the end
    (not with an SMA) and then smoothed forward with ``2 / (period + 1)``.
    """
    values = [float(value) for value in prices]
    if period <= 0 or len(values) < period:
        return None
    multiplier = 2.0 / (period + 1)
    start = len(values) - period
    current = values[start]
    for price in values[start + 1 :]:
        current = price * multiplier + current * (1 - multiplier)
    return None if math.isnan(current) else current


def rsi(prices: Iterable[float], period: int = 14) -> float | None:
    """Relative strength index from simple average gains/losses over the last ``period`` deltas."""
    series = _to_series(prices)
    if period <= 0 or len(series) < period + 1:
        return None
    deltas = series.diff().tail(period)
    gain_sum = float(deltas.clip(lower=0.0).sum(skipna=False, min_count=period))
    loss_sum = float((-deltas.clip(upper=0.0)).sum(skipna=False, min_count=period))
    if math.isnan(gain_sum) or math.isnan(loss_sum):
        return None
    avg_gain = gain_sum / period
    avg_loss = loss_sum / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def macd(
    prices: Iterable[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
    *,
    signal_mode: SignalMode = "legacy",
) -> MACDResult | None:
    """
    MACD line (fast EMA minus slow EMA) and its signal line.

    ``legacy`` mode reports the signal line equal to the MACD line itself, since
    no MACD history is kept. ``ema`` mode builds the full MACD line series with
    pandas EWM and smooths it over ``signal`` periods.
    """
    values = [float(value) for value in prices]
    if len(values) < max(slow, signal) + 1:
        return None

    if signal_mode == "ema":
        series = _to_series(values)
        macd_line = _ema_series(series, fast) - _ema_series(series, slow)
        signal_line = _ema_series(macd_line, signal)
        line_value = _as_float(macd_line.iloc[-1])
        signal_value = _as_float(signal_line.iloc[-1])
        if line_value is None or signal_value is None:
            return None
        return MACDResult(macd=line_value, signal=signal_value)

    fast_ema = ema(values, fast)
    slow_ema = ema(values, slow)
    if fast_ema is None or slow_ema is None:
        return None
    line = fast_ema - slow_ema
    return MACDResult(macd=line, signal=line)


class IndicatorCalculations:
    sma_periods: tuple[int, int, int] = (20, 50, 200)
    rsi_period: int = 14
    ema_fast_period: int = 12
    ema_slow_period: int = 26
    signal_period: int = 9

    def __init__(self, *, signal_mode: SignalMode = "legacy") -> None:
        self.signal_mode: SignalMode = signal_mode

    def sma(self, prices: Iterable[float], period: int) -> float | None:
        return sma(prices, period)

    def ema(self, prices: Iterable[float], period: int) -> float | None:
        return ema(prices, period)

    def rsi(self, prices: Iterable[float], period: int | None = None) -> float | None:
        return rsi(prices, period or self.rsi_period)

    def macd(self, prices: Iterable[float]) -> MACDResult | None:
        return macd(
            prices,
            self.ema_fast_period,
            self.ema_slow_period,
            self.signal_period,
            signal_mode=self.signal_mode,
        )

    def compute(self, prices: Iterable[float]) -> TechnicalIndicators:
        values = [float(value) for value in prices]
        short, medium, long = self.sma_periods
        macd_result = self.macd(values)
        indicators = TechnicalIndicators(
            sma20=self.sma(values, short),
            sma50=self.sma(values, medium),
            sma200=self.sma(values, long),
            rsi14=self.rsi(values),
            macd=macd_result.macd if macd_result else None,
            macd_signal=macd_result.signal if macd_result else None,
        )
        logger.debug("Computed indicators over %s prices: %s", len(values), indicators)
        return indicators


__all__ = ["IndicatorCalculations", "MACDResult", "SignalMode", "sma", "ema", "rsi", "macd"]
