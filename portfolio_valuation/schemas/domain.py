"""Domain models for one refresh cycle.

All models are frozen: holdings and catalog data are immutable within a cycle
and everything downstream is derived from them. Non-finite floats are rejected
at validation so NaN/inf can never reach the metrics.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TradeSide = Literal["buy", "sell"]

USD = "USD"


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)


class CatalogEntry(FrozenModel):
    """A CoinGecko coin, optionally enriched with its batched USD quote."""

    id: str
    symbol: str
    name: Optional[str] = None
    usd_price: Optional[float] = Field(default=None, ge=0)
    usd_change_24h: Optional[float] = None
    usd_market_cap: float = Field(default=0.0, ge=0)


class PriceQuote(FrozenModel):
    """One entry of the batched ``/simple/price`` response."""

    usd: Optional[float] = Field(default=None, ge=0)
    usd_24h_change: Optional[float] = None
    usd_market_cap: Optional[float] = Field(default=None, ge=0)


class MatchedPrice(FrozenModel):
    entry: CatalogEntry
    current_usd_price: float = Field(ge=0)
    change_24h: Optional[float] = None


class TradeSnapshot(FrozenModel):
    timestamp: datetime
    side: TradeSide
    quantity: float = Field(ge=0)
    price: float
    trade_id: Optional[str] = None
    commission: float = 0.0
    commission_asset: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC so trades from any pair compare
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def scaled(self, factor: float) -> "TradeSnapshot":
        """Return the same trade with its price multiplied by ``factor``."""
        return self.model_copy(update={"price": self.price * factor})


class TradeAggregate(FrozenModel):
    """Per-asset, per-quote-currency trade totals."""

    quote_currency: str
    buy_quantity: float = Field(default=0.0, ge=0)
    total_cost: float = 0.0
    sell_quantity: float = Field(default=0.0, ge=0)
    total_revenue: float = 0.0
    earliest_trade: Optional[TradeSnapshot] = None
    latest_trade: Optional[TradeSnapshot] = None
    fees: Dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _quantity_value_pairs(self) -> "TradeAggregate":
        if (self.buy_quantity == 0) != (self.total_cost == 0):
            raise ValueError(
                f"{self.quote_currency}: buy quantity and total cost must both be zero or both non-zero"
            )
        if (self.sell_quantity == 0) != (self.total_revenue == 0):
            raise ValueError(
                f"{self.quote_currency}: sell quantity and total revenue must both be zero or both non-zero"
            )
        return self


class AssetHolding(FrozenModel):
    symbol: str
    # May be negative because of upstream data errors; tolerated as-is.
    balance: float = 0.0
    pairs: Dict[str, TradeAggregate] = Field(default_factory=dict)
    distribution_total: float = 0.0


class HoldingsSnapshot(FrozenModel):
    """Holdings collaborator response for one credential."""

    holdings: List[AssetHolding] = Field(default_factory=list)
    last_update: Optional[datetime] = None


class CanonicalAsset(FrozenModel):
    """An asset after every convertible pair has been normalized to USD."""

    symbol: str
    balance: float
    usd_aggregate: Optional[TradeAggregate] = None
    matched: Optional[MatchedPrice] = None
    unconverted_quotes: List[str] = Field(default_factory=list)
    total_fees_usd: Optional[float] = None
    distribution_total: float = 0.0

    @property
    def pricing_complete(self) -> bool:
        return self.matched is not None and not self.unconverted_quotes


class AssetMetrics(FrozenModel):
    average_buy: Optional[float] = None
    average_sell: Optional[float] = None
    price_differential: Optional[float] = None
    percent_differential: Optional[float] = None
    profit: Optional[float] = None
    market_value: Optional[float] = None
    distribution_value: Optional[float] = None


class ValuationRecord(FrozenModel):
    symbol: str
    balance: float
    catalog_id: Optional[str] = None
    name: Optional[str] = None
    current_price: Optional[float] = None
    change_24h: Optional[float] = None
    average_buy: Optional[float] = None
    average_sell: Optional[float] = None
    price_differential: Optional[float] = None
    percent_differential: Optional[float] = None
    profit: Optional[float] = None
    market_value: Optional[float] = None
    buy_quantity: Optional[float] = None
    sell_quantity: Optional[float] = None
    total_cost: Optional[float] = None
    total_revenue: Optional[float] = None
    earliest_trade: Optional[TradeSnapshot] = None
    latest_trade: Optional[TradeSnapshot] = None
    total_fees_usd: Optional[float] = None
    distribution_value: Optional[float] = None
    unconverted_quotes: List[str] = Field(default_factory=list)
    pricing_complete: bool = False


class PortfolioTotals(FrozenModel):
    total_cost: float = 0.0
    total_revenue: float = 0.0
    total_fees_usd: float = 0.0
    market_value: float = 0.0
    profit: float = 0.0
    distribution_value: float = 0.0
    # True when at least one record had an undefined contributor.
    incomplete: bool = False


class ValuationResult(FrozenModel):
    records: List[ValuationRecord] = Field(default_factory=list)
    unmatched_symbols: List[str] = Field(default_factory=list)
    totals: PortfolioTotals = Field(default_factory=PortfolioTotals)
