from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger("coinwatch.holdings")


class HoldingsError(RuntimeError):
    """Raised when the holdings file cannot be read or parsed."""


class Holding(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    symbol: str
    name: str = ""
    holdings: float = 0.0
    average_price: float = Field(default=0.0, alias="avgBuyPrice")
    expected_entry: float = Field(default=0.0, alias="expectedEntry")
    expected_deep_entry: float = Field(default=0.0, alias="expectedDeepEntry")
    target_price_3_month: float = Field(default=0.0, alias="targetPrice3Month")
    target_price_long_term: float = Field(default=0.0, alias="targetPriceLongTerm")
    sector: str | None = None


class Holdings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    positions: list[Holding] = Field(default_factory=list)

    def asset_ids(self) -> list[str]:
        """Distinct CoinGecko ids in file order."""
        seen: dict[str, None] = {}
        for holding in self.positions:
            seen.setdefault(holding.id, None)
        return list(seen)


def load_holdings(path: str | Path) -> Holdings:
    file_path = Path(path)
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise HoldingsError(f"Failed to load holdings from {file_path}") from exc
    # older files keep the list under "cryptos"
    if isinstance(payload, dict) and "positions" not in payload and "cryptos" in payload:
        payload = {"positions": payload["cryptos"]}
    try:
        holdings = Holdings.model_validate(payload)
    except ValidationError as exc:
        raise HoldingsError(f"Invalid holdings file {file_path}: {exc}") from exc
    logger.debug("Loaded %s holdings from %s", len(holdings.positions), file_path)
    return holdings


__all__ = ["Holding", "Holdings", "HoldingsError", "load_holdings"]
