from .coingecko import CoinGeckoConfig, CoinGeckoFetcher

__all__ = ["CoinGeckoConfig", "CoinGeckoFetcher"]
