from __future__ import annotations

from typing import Mapping

# Uppercase ticker -> CoinGecko coin id
SYMBOL_TO_COINGECKO_ID: Mapping[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "ADA": "cardano",
    "DOT": "polkadot",
    "SOL": "solana",
    "MATIC": "matic-network",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "AVAX": "avalanche-2",
    "ATOM": "cosmos",
    "BNB": "binancecoin",
    "OP": "optimism",
    "ARB": "arbitrum",
    "SUI": "sui",
    "RNDR": "render-token",
    "FET": "fetch-ai",
    "C": "chainbase",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "NEAR": "near",
    "TAO": "bittensor",
    "ONDO": "ondo-finance",
    "USDT": "tether",
}

KNOWN_COINGECKO_IDS: frozenset[str] = frozenset(SYMBOL_TO_COINGECKO_ID.values())


def resolve_asset_id(symbol_or_id: str) -> str:
    """
    Map a ticker symbol or CoinGecko id to the provider's canonical id.

    Known ids pass through unchanged, known tickers are looked up in the static
    table and anything else is lower-cased as a best-effort guess.
    """
    value = symbol_or_id.strip()
    if value in KNOWN_COINGECKO_IDS:
        return value
    mapped = SYMBOL_TO_COINGECKO_ID.get(value.upper())
    if mapped is not None:
        return mapped
    return value.lower()


__all__ = ["SYMBOL_TO_COINGECKO_ID", "KNOWN_COINGECKO_IDS", "resolve_asset_id"]
