"""Convert per-quote-currency trade aggregates into one USD aggregate per asset."""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Tuple

from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.domain import (
    USD,
    AssetHolding,
    CanonicalAsset,
    MatchedPrice,
    TradeAggregate,
    TradeSnapshot,
)
from portfolio_valuation.services.catalog_matcher import normalize_symbol

log = get_logger("pair_normalizer")

DEFAULT_USD_QUOTES = ("USD", "USDT", "BUSD", "USDC", "TUSD")


class PairNormalizer:
    """Normalizes an asset's pairs using the prices bound by ``CatalogMatcher``.

    Quote currencies in ``usd_quotes`` convert at par. Every other quote
    currency converts by its matched USD price; a pair whose quote currency is
    unmatched is left out of the merge and reported in ``unconverted_quotes``.
    """

    def __init__(self, usd_quotes: Iterable[str] = DEFAULT_USD_QUOTES):
        self.usd_quotes = frozenset(normalize_symbol(q) for q in usd_quotes) | {USD}

    def is_usd(self, currency: str) -> bool:
        return normalize_symbol(currency) in self.usd_quotes

    def usd_rate(self, currency: str, prices: Mapping[str, MatchedPrice]) -> Optional[float]:
        """USD value of one unit of ``currency``, or ``None`` when unknown."""
        if self.is_usd(currency):
            return 1.0
        matched = prices.get(normalize_symbol(currency))
        if matched is None or matched.current_usd_price <= 0:
            return None
        return matched.current_usd_price

    def symbols_to_resolve(self, holdings: Iterable[AssetHolding]) -> List[str]:
        """Every asset symbol plus every non-USD quote and fee currency, sorted."""
        symbols = set()
        for holding in holdings:
            symbols.add(normalize_symbol(holding.symbol))
            for quote, pair in holding.pairs.items():
                if not self.is_usd(quote):
                    symbols.add(normalize_symbol(quote))
                for fee_currency in pair.fees:
                    if not self.is_usd(fee_currency):
                        symbols.add(normalize_symbol(fee_currency))
        return sorted(s for s in symbols if s)

    def convert(self, pair: TradeAggregate, rate: float) -> TradeAggregate:
        """Scale a pair's monetary fields by ``rate`` and relabel it as USD."""
        return pair.model_copy(
            update={
                "quote_currency": USD,
                "total_cost": pair.total_cost * rate,
                "total_revenue": pair.total_revenue * rate,
                "earliest_trade": pair.earliest_trade.scaled(rate) if pair.earliest_trade else None,
                "latest_trade": pair.latest_trade.scaled(rate) if pair.latest_trade else None,
            }
        )

    def merge(self, pairs: Iterable[TradeAggregate]) -> Optional[TradeAggregate]:
        """Sum already-converted USD pairs into a single aggregate."""
        pairs = list(pairs)
        if not pairs:
            return None

        earliest: Optional[TradeSnapshot] = None
        latest: Optional[TradeSnapshot] = None
        for pair in pairs:
            if pair.earliest_trade and (earliest is None or pair.earliest_trade.timestamp < earliest.timestamp):
                earliest = pair.earliest_trade
            if pair.latest_trade and (latest is None or pair.latest_trade.timestamp > latest.timestamp):
                latest = pair.latest_trade

        # Converted sums can round to zero or cancel out; they are not re-validated
        return TradeAggregate.model_construct(
            quote_currency=USD,
            buy_quantity=sum(p.buy_quantity for p in pairs),
            total_cost=sum(p.total_cost for p in pairs),
            sell_quantity=sum(p.sell_quantity for p in pairs),
            total_revenue=sum(p.total_revenue for p in pairs),
            earliest_trade=earliest,
            latest_trade=latest,
        )

    def fees_usd(
        self, pairs: Iterable[TradeAggregate], prices: Mapping[str, MatchedPrice]
    ) -> Optional[float]:
        total = 0.0
        for pair in pairs:
            for currency, amount in pair.fees.items():
                if not amount:
                    continue
                rate = self.usd_rate(currency, prices)
                if rate is None:
                    return None
                total += amount * rate
        return total

    def normalize(
        self, holding: AssetHolding, prices: Mapping[str, MatchedPrice]
    ) -> CanonicalAsset:
        converted, unconverted = self._convert_pairs(holding, prices)
        if unconverted:
            log.warning(f"{holding.symbol}: cannot convert pairs quoted in {', '.join(unconverted)}")

        return CanonicalAsset(
            symbol=holding.symbol,
            balance=holding.balance,
            usd_aggregate=self.merge(converted),
            matched=prices.get(normalize_symbol(holding.symbol)),
            unconverted_quotes=unconverted,
            total_fees_usd=self.fees_usd(holding.pairs.values(), prices) if holding.pairs else None,
            distribution_total=holding.distribution_total,
        )

    def _convert_pairs(
        self, holding: AssetHolding, prices: Mapping[str, MatchedPrice]
    ) -> Tuple[List[TradeAggregate], List[str]]:
        converted: List[TradeAggregate] = []
        unconverted: List[str] = []
        for quote in sorted(holding.pairs):
            rate = self.usd_rate(quote, prices)
            if rate is None:
                unconverted.append(normalize_symbol(quote))
                continue
            converted.append(self.convert(holding.pairs[quote], rate))
        return converted, unconverted

