"""Refresh cycle tests with in-memory collaborators"""

import asyncio

import pytest

from portfolio_valuation.core.errors import (
    ErrorKind,
    HoldingsNotFoundError,
    MalformedUpstreamError,
    RefreshInProgressError,
    UnauthorizedError,
    UpstreamUnavailableError,
)
from portfolio_valuation.ingestion.base import CatalogSource, HoldingsSource
from portfolio_valuation.schemas.domain import HoldingsSnapshot
from portfolio_valuation.services import refresh_service
from portfolio_valuation.services.refresh_service import RefreshService
from portfolio_valuation.services.valuation import MatchingPolicy
from portfolio_valuation.tests.factories import entry, holding, pair, quote


class FakeHoldingsSource(HoldingsSource):
    name = "fake-holdings"

    def __init__(self, holdings=None, error=None, gate=None):
        self.holdings = holdings or []
        self.error = error
        self.gate = gate
        self.credentials = []

    async def fetch_holdings(self, credential):
        self.credentials.append(credential)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return HoldingsSnapshot(holdings=self.holdings)


class FakeCatalogSource(CatalogSource):
    name = "fake-catalog"

    def __init__(self, catalog=None, prices=None, catalog_error=None, price_error=None):
        self.catalog = catalog or []
        self.prices = prices or {}
        self.catalog_error = catalog_error
        self.price_error = price_error
        self.price_requests = []

    async def fetch_catalog(self):
        if self.catalog_error is not None:
            raise self.catalog_error
        return self.catalog

    async def fetch_prices(self, ids):
        self.price_requests.append(list(ids))
        if self.price_error is not None:
            raise self.price_error
        return {coin_id: self.prices[coin_id] for coin_id in ids if coin_id in self.prices}


CATALOG = [
    entry("bitcoin", "btc", "Bitcoin"),
    entry("ethereum", "eth", "Ethereum"),
    entry("wrapped-bitcoin-wormhole", "btc", "Bitcoin (Wormhole)"),
]
PRICES = {
    "bitcoin": quote(60000, cap=1.1e12),
    "ethereum": quote(2500, cap=3e11),
}
POLICY = MatchingPolicy()


class TestRefreshService:
    """Test status mapping and cycle orchestration"""

    @pytest.mark.asyncio
    async def test_ok_cycle(self):
        holdings = FakeHoldingsSource([
            holding("BTC", 1, pair("USDT", buy_qty=1, cost=30000)),
            holding("ETH", 2, pair("BTC", buy_qty=2, cost=0.1)),
        ])
        catalog = FakeCatalogSource(CATALOG, PRICES)
        outcome = await RefreshService(holdings, catalog, POLICY).run_cycle("key")

        assert outcome.status == "ok"
        assert outcome.error_kind is None
        assert outcome.message is None
        assert [r.symbol for r in outcome.result.records] == ["BTC", "ETH"]
        assert holdings.credentials == ["key"]

    @pytest.mark.asyncio
    async def test_one_batched_price_request(self):
        holdings = FakeHoldingsSource([
            holding("BTC", 1),
            holding("ETH", 2, pair("BTC", buy_qty=2, cost=0.1)),
        ])
        catalog = FakeCatalogSource(CATALOG, PRICES)
        await RefreshService(holdings, catalog, POLICY).run_cycle("key")

        assert catalog.price_requests == [["bitcoin", "ethereum"]]

    @pytest.mark.asyncio
    async def test_unmatched_symbol_is_partial(self):
        holdings = FakeHoldingsSource([holding("BTC", 1), holding("IOTA", 10)])
        outcome = await RefreshService(holdings, FakeCatalogSource(CATALOG, PRICES), POLICY).run_cycle("key")

        assert outcome.status == "partial"
        assert outcome.error_kind == ErrorKind.PARTIAL_PRICE_UNAVAILABLE
        assert outcome.result.unmatched_symbols == ["IOTA"]
        assert "IOTA" in outcome.message
        assert len(outcome.result.records) == 2

    @pytest.mark.asyncio
    async def test_catalog_failure_degrades(self):
        holdings = FakeHoldingsSource([holding("BTC", 1, pair("USDT", buy_qty=1, cost=30000))])
        catalog = FakeCatalogSource(catalog_error=UpstreamUnavailableError("HTTP 503", source="coingecko"))
        outcome = await RefreshService(holdings, catalog, POLICY).run_cycle("key")

        assert outcome.status == "partial"
        assert catalog.price_requests == []
        record = outcome.result.records[0]
        assert record.current_price is None
        assert record.average_buy == 30000
        assert "catalog unavailable" in outcome.message

    @pytest.mark.asyncio
    async def test_price_failure_degrades(self):
        holdings = FakeHoldingsSource([holding("BTC", 1)])
        catalog = FakeCatalogSource(CATALOG, PRICES, price_error=MalformedUpstreamError("bad", source="coingecko"))
        outcome = await RefreshService(holdings, catalog, POLICY).run_cycle("key")

        assert outcome.status == "partial"
        assert outcome.result.unmatched_symbols == ["BTC"]
        assert "prices unavailable" in outcome.message

    @pytest.mark.asyncio
    async def test_no_trade_history_is_empty(self):
        holdings = FakeHoldingsSource(error=HoldingsNotFoundError("no history", source="holdings"))
        outcome = await RefreshService(holdings, FakeCatalogSource(CATALOG, PRICES), POLICY).run_cycle("key")

        assert outcome.status == "empty"
        assert outcome.error_kind == ErrorKind.NOT_FOUND
        assert outcome.result is None

    @pytest.mark.asyncio
    async def test_empty_snapshot_is_empty(self):
        outcome = await RefreshService(FakeHoldingsSource([]), FakeCatalogSource(CATALOG, PRICES), POLICY).run_cycle("key")
        assert outcome.status == "empty"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, kind",
        [
            (UnauthorizedError("rejected", source="holdings"), ErrorKind.UNAUTHORIZED),
            (MalformedUpstreamError("bad payload", source="holdings"), ErrorKind.MALFORMED_UPSTREAM),
            (UpstreamUnavailableError("timeout", source="holdings"), ErrorKind.UPSTREAM_UNAVAILABLE),
            (RuntimeError("unexpected"), ErrorKind.UPSTREAM_UNAVAILABLE),
        ],
    )
    async def test_holdings_failure_aborts(self, error, kind):
        catalog = FakeCatalogSource(CATALOG, PRICES)
        outcome = await RefreshService(FakeHoldingsSource(error=error), catalog, POLICY).run_cycle("key")

        assert outcome.status == "failed"
        assert outcome.error_kind == kind
        assert outcome.result is None
        assert catalog.price_requests == []

    @pytest.mark.asyncio
    async def test_overlapping_cycle_is_rejected(self):
        gate = asyncio.Event()
        holdings = FakeHoldingsSource([holding("BTC", 1)], gate=gate)
        service = RefreshService(holdings, FakeCatalogSource(CATALOG, PRICES), POLICY)

        first = asyncio.create_task(service.run_cycle("key"))
        await asyncio.sleep(0)
        assert service.is_running("key")

        with pytest.raises(RefreshInProgressError):
            await service.run_cycle("key")

        gate.set()
        outcome = await first
        assert outcome.status == "ok"
        assert not service.is_running("key")

        # The lock is released once the first cycle finishes
        second = await service.run_cycle("key")
        assert second.status == "ok"

    @pytest.mark.asyncio
    async def test_other_credentials_are_not_blocked(self):
        gate = asyncio.Event()
        holdings = FakeHoldingsSource([holding("BTC", 1)], gate=gate)
        service = RefreshService(holdings, FakeCatalogSource(CATALOG, PRICES), POLICY)

        first = asyncio.create_task(service.run_cycle("key-a"))
        await asyncio.sleep(0)
        second = asyncio.create_task(service.run_cycle("key-b"))
        await asyncio.sleep(0)
        assert service.is_running("key-a") and service.is_running("key-b")

        gate.set()
        outcomes = await asyncio.gather(first, second)
        assert [o.status for o in outcomes] == ["ok", "ok"]

    @pytest.mark.asyncio
    async def test_assets_without_history_mark_refreshing(self):
        holdings = FakeHoldingsSource([
            holding("BTC", 1, pair("USDT", buy_qty=1, cost=30000)),
            holding("ETH", 2),
        ])
        outcome = await RefreshService(holdings, FakeCatalogSource(CATALOG, PRICES), POLICY).run_cycle("key")

        assert outcome.is_refreshing is True
        assert len(outcome.result.records) == 2

    @pytest.mark.asyncio
    async def test_full_history_is_not_refreshing(self):
        holdings = FakeHoldingsSource([holding("BTC", 1, pair("USDT", buy_qty=1, cost=30000))])
        outcome = await RefreshService(holdings, FakeCatalogSource(CATALOG, PRICES), POLICY).run_cycle("key")
        assert outcome.is_refreshing is False

    @pytest.mark.asyncio
    async def test_reconcile_failure_is_reported(self, monkeypatch):
        def broken_reconcile(*args, **kwargs):
            raise ValueError("non-finite total")

        monkeypatch.setattr(refresh_service, "reconcile", broken_reconcile)
        holdings = FakeHoldingsSource([holding("BTC", 1)])
        service = RefreshService(holdings, FakeCatalogSource(CATALOG, PRICES), POLICY)
        outcome = await service.run_cycle("key")

        assert outcome.status == "failed"
        assert outcome.error_kind == ErrorKind.MALFORMED_UPSTREAM
        assert outcome.result is None
        assert not service.is_running("key")
