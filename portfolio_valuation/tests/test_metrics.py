"""Metrics calculation tests"""

import math

import pytest

from portfolio_valuation.schemas.domain import CanonicalAsset, MatchedPrice, TradeAggregate
from portfolio_valuation.services.metrics import MetricsCalculator, percent_differential, safe_ratio
from portfolio_valuation.tests.factories import entry


def canonical(balance=1.0, price=None, aggregate=None, unconverted=(), distribution_total=0.0):
    matched = None
    if price is not None:
        matched = MatchedPrice(entry=entry("coin", "CN"), current_usd_price=price)
    return CanonicalAsset(
        symbol="CN",
        balance=balance,
        usd_aggregate=aggregate,
        matched=matched,
        unconverted_quotes=list(unconverted),
        distribution_total=distribution_total,
    )


def usd(buy_qty=0.0, cost=0.0, sell_qty=0.0, revenue=0.0):
    return TradeAggregate(
        quote_currency="USD",
        buy_quantity=buy_qty,
        total_cost=cost,
        sell_quantity=sell_qty,
        total_revenue=revenue,
    )


class TestMetricsCalculator:
    """Test that metrics stay undefined unless their inputs are valid"""

    @pytest.fixture
    def calculator(self):
        return MetricsCalculator()

    def test_full_metrics(self, calculator):
        metrics = calculator.compute(canonical(balance=2, price=150, aggregate=usd(4, 400, 2, 300)))
        assert metrics.average_buy == 100
        assert metrics.average_sell == 150
        assert metrics.price_differential == 50
        assert metrics.percent_differential == pytest.approx(50 / 125 * 100)
        assert metrics.profit == 300 - 400 + 2 * 150
        assert metrics.market_value == 300

    def test_zero_buy_quantity_leaves_average_buy_undefined(self, calculator):
        metrics = calculator.compute(canonical(price=10, aggregate=usd(sell_qty=1, revenue=12)))
        assert metrics.average_buy is None
        assert metrics.price_differential is None
        assert metrics.percent_differential is None
        assert metrics.average_sell == 12

    def test_zero_sell_quantity_leaves_average_sell_undefined(self, calculator):
        metrics = calculator.compute(canonical(price=10, aggregate=usd(buy_qty=1, cost=8)))
        assert metrics.average_sell is None

    def test_unknown_price(self, calculator):
        metrics = calculator.compute(canonical(price=None, aggregate=usd(buy_qty=2, cost=8)))
        assert metrics.average_buy == 4
        assert metrics.price_differential is None
        assert metrics.profit is None
        assert metrics.market_value is None

    def test_profit_uses_negative_balance(self, calculator):
        metrics = calculator.compute(canonical(balance=-1.5, price=10, aggregate=usd(buy_qty=1, cost=8)))
        assert metrics.profit == 0 - 8 + (-1.5) * 10

    def test_deposit_without_pairs(self, calculator):
        metrics = calculator.compute(canonical(balance=5, price=20))
        assert metrics.average_buy is None
        assert metrics.average_sell is None
        assert metrics.profit is None
        assert metrics.market_value == 100

    def test_unconverted_pairs_hide_cost_metrics(self, calculator):
        metrics = calculator.compute(canonical(price=10, aggregate=usd(buy_qty=1, cost=8), unconverted=["XYZ"]))
        assert metrics.average_buy is None
        assert metrics.profit is None
        assert metrics.market_value == 10

    def test_distribution_value(self, calculator):
        metrics = calculator.compute(canonical(price=3, distribution_total=4))
        assert metrics.distribution_value == 12

    def test_zero_price_and_zero_average_has_no_percent(self):
        assert percent_differential(0.0, 0.0) is None

    def test_percent_with_zero_price(self):
        assert percent_differential(0.0, 10.0) == -200

    def test_safe_ratio_never_divides_by_zero(self):
        assert safe_ratio(10, 0) is None
        value = safe_ratio(10, 4)
        assert value == 2.5 and not math.isnan(value)
