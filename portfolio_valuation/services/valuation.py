"""Join canonical assets and metrics into the final valuation.

``reconcile`` is the pure entry point of the engine: it takes the holdings, the
catalog and the batched price map of one cycle and returns a
``ValuationResult`` without touching the network or any shared state.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.domain import (
    AssetHolding,
    AssetMetrics,
    CanonicalAsset,
    CatalogEntry,
    PortfolioTotals,
    PriceQuote,
    ValuationRecord,
    ValuationResult,
)
from portfolio_valuation.services.catalog_matcher import DEFAULT_EXCLUDE_PATTERN, CatalogMatcher
from portfolio_valuation.services.metrics import MetricsCalculator
from portfolio_valuation.services.pair_normalizer import DEFAULT_USD_QUOTES, PairNormalizer

log = get_logger("valuation")


class MatchingPolicy(BaseModel):
    """Tunable knobs of a reconciliation run."""

    model_config = ConfigDict(frozen=True)

    exclude_pattern: Optional[str] = DEFAULT_EXCLUDE_PATTERN
    usd_quotes: Tuple[str, ...] = DEFAULT_USD_QUOTES

    def matcher(self) -> CatalogMatcher:
        return CatalogMatcher(self.exclude_pattern)

    def normalizer(self) -> PairNormalizer:
        return PairNormalizer(self.usd_quotes)


class ValuationAssembler:
    """Builds one record per held asset and orders the result."""

    def build_record(self, asset: CanonicalAsset, metrics: AssetMetrics) -> ValuationRecord:
        aggregate = asset.usd_aggregate
        matched = asset.matched
        # Totals over a partial set of pairs are unknown, not smaller
        known = aggregate if not asset.unconverted_quotes else None
        return ValuationRecord(
            symbol=asset.symbol,
            balance=asset.balance,
            catalog_id=matched.entry.id if matched else None,
            name=matched.entry.name if matched else None,
            current_price=matched.current_usd_price if matched else None,
            change_24h=matched.change_24h if matched else None,
            average_buy=metrics.average_buy,
            average_sell=metrics.average_sell,
            price_differential=metrics.price_differential,
            percent_differential=metrics.percent_differential,
            profit=metrics.profit,
            market_value=metrics.market_value,
            buy_quantity=known.buy_quantity if known else None,
            sell_quantity=known.sell_quantity if known else None,
            total_cost=known.total_cost if known else None,
            total_revenue=known.total_revenue if known else None,
            earliest_trade=aggregate.earliest_trade if aggregate else None,
            latest_trade=aggregate.latest_trade if aggregate else None,
            total_fees_usd=asset.total_fees_usd,
            distribution_value=metrics.distribution_value,
            unconverted_quotes=list(asset.unconverted_quotes),
            pricing_complete=asset.pricing_complete,
        )

    @staticmethod
    def order(records: Iterable[ValuationRecord]) -> List[ValuationRecord]:
        """Descending percent differential; undefined values last, input order on ties."""
        records = list(records)
        defined = [r for r in records if r.percent_differential is not None]
        undefined = [r for r in records if r.percent_differential is None]
        defined.sort(key=lambda r: r.percent_differential, reverse=True)
        return defined + undefined

    @staticmethod
    def totals(records: Sequence[ValuationRecord]) -> PortfolioTotals:
        sums = {
            "total_cost": 0.0,
            "total_revenue": 0.0,
            "total_fees_usd": 0.0,
            "market_value": 0.0,
            "profit": 0.0,
            "distribution_value": 0.0,
        }
        for record in records:
            for field in sums:
                value = getattr(record, field)
                if value is not None:
                    sums[field] += value
        incomplete = any(
            not r.pricing_complete or (r.total_cost is not None and r.total_fees_usd is None)
            for r in records
        )
        return PortfolioTotals(**sums, incomplete=incomplete)

    def assemble(
        self,
        assets: Sequence[CanonicalAsset],
        metrics: Sequence[AssetMetrics],
        unmatched: Sequence[str],
    ) -> ValuationResult:
        records = [self.build_record(a, m) for a, m in zip(assets, metrics)]
        ordered = self.order(records)
        return ValuationResult(
            records=ordered,
            unmatched_symbols=sorted(unmatched),
            totals=self.totals(ordered),
        )


def reconcile(
    holdings: Sequence[AssetHolding],
    catalog: Sequence[CatalogEntry],
    prices: Mapping[str, PriceQuote],
    policy: Optional[MatchingPolicy] = None,
) -> ValuationResult:
    """Value ``holdings`` against ``catalog`` and the batched ``prices`` map."""
    policy = policy or MatchingPolicy()
    matcher = policy.matcher()
    normalizer = policy.normalizer()

    symbols = normalizer.symbols_to_resolve(holdings)
    matched, unmatched = matcher.match(symbols, catalog, prices)

    assets = [normalizer.normalize(holding, matched) for holding in holdings]
    calculator = MetricsCalculator()
    metrics = [calculator.compute(asset) for asset in assets]

    result = ValuationAssembler().assemble(assets, metrics, unmatched)
    log.info(
        f"Reconciled {len(result.records)} holdings "
        f"({len(result.unmatched_symbols)} unmatched symbols, incomplete={result.totals.incomplete})"
    )
    return result
