from portfolio_valuation.schemas.domain import (
    AssetHolding,
    CanonicalAsset,
    CatalogEntry,
    HoldingsSnapshot,
    MatchedPrice,
    PortfolioTotals,
    PriceQuote,
    TradeAggregate,
    TradeSnapshot,
    ValuationRecord,
    ValuationResult,
)

__all__ = [
    "AssetHolding",
    "CanonicalAsset",
    "CatalogEntry",
    "HoldingsSnapshot",
    "MatchedPrice",
    "PortfolioTotals",
    "PriceQuote",
    "TradeAggregate",
    "TradeSnapshot",
    "ValuationRecord",
    "ValuationResult",
]
