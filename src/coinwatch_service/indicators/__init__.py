from .calculations import IndicatorCalculations, MACDResult, SignalMode, ema, macd, rsi, sma

__all__ = ["IndicatorCalculations", "MACDResult", "SignalMode", "sma", "ema", "rsi", "macd"]
