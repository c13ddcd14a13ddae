"""Per-asset valuation metrics.

Every metric is ``None`` unless all of its inputs are defined and valid; there
is no zero fallback and no division that can produce NaN or inf.
"""

from __future__ import annotations

from typing import Optional

from portfolio_valuation.schemas.domain import AssetMetrics, CanonicalAsset


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if denominator <= 0:
        return None
    return numerator / denominator


def price_differential(current_price: Optional[float], average_buy: Optional[float]) -> Optional[float]:
    if current_price is None or average_buy is None:
        return None
    return current_price - average_buy


def percent_differential(current_price: Optional[float], average_buy: Optional[float]) -> Optional[float]:
    """Difference relative to the midpoint of current price and average buy."""
    if current_price is None or average_buy is None:
        return None
    midpoint = (current_price + average_buy) / 2
    if midpoint == 0:
        return None
    return (current_price - average_buy) / midpoint * 100


class MetricsCalculator:
    def compute(self, asset: CanonicalAsset) -> AssetMetrics:
        current_price = asset.matched.current_usd_price if asset.matched else None

        market_value = None
        distribution_value = None
        if current_price is not None:
            market_value = asset.balance * current_price
            if asset.distribution_total:
                distribution_value = asset.distribution_total * current_price

        aggregate = asset.usd_aggregate
        # Partially converted trade data would understate cost or revenue
        if aggregate is None or asset.unconverted_quotes:
            return AssetMetrics(market_value=market_value, distribution_value=distribution_value)

        average_buy = safe_ratio(aggregate.total_cost, aggregate.buy_quantity)
        average_sell = safe_ratio(aggregate.total_revenue, aggregate.sell_quantity)

        profit = None
        if current_price is not None:
            profit = aggregate.total_revenue - aggregate.total_cost + asset.balance * current_price

        return AssetMetrics(
            average_buy=average_buy,
            average_sell=average_sell,
            price_differential=price_differential(current_price, average_buy),
            percent_differential=percent_differential(current_price, average_buy),
            profit=profit,
            market_value=market_value,
            distribution_value=distribution_value,
        )
