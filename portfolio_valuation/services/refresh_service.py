"""One refresh cycle: fetch collaborators, reconcile, map failures to an outcome."""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from portfolio_valuation.core.config import settings
from portfolio_valuation.core.errors import (
    ErrorKind,
    RefreshInProgressError,
    ValuationError,
)
from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.ingestion.base import CatalogSource, HoldingsSource
from portfolio_valuation.ingestion.coingecko import CoinGeckoSource
from portfolio_valuation.ingestion.holdings_source import ExchangeHoldingsSource
from portfolio_valuation.schemas.api import RefreshOutcome
from portfolio_valuation.schemas.domain import CatalogEntry, PriceQuote
from portfolio_valuation.services.valuation import MatchingPolicy, reconcile

log = get_logger("refresh_service")


def policy_from_settings() -> MatchingPolicy:
    return MatchingPolicy(
        exclude_pattern=settings.CATALOG_EXCLUDE_PATTERN or None,
        usd_quotes=tuple(settings.USD_QUOTE_CURRENCIES),
    )


class RefreshService:
    """Runs refresh cycles against the holdings and catalog collaborators.

    Holds no valuation state between cycles. The only shared state is one lock
    per credential so that a cycle cannot start while another one for the same
    credential is still running.

    Usage:
        service = RefreshService(ExchangeHoldingsSource(), CoinGeckoSource())
        outcome = await service.run_cycle(api_key)
    """

    def __init__(
        self,
        holdings_source: HoldingsSource,
        catalog_source: CatalogSource,
        policy: Optional[MatchingPolicy] = None,
    ):
        self.holdings_source = holdings_source
        self.catalog_source = catalog_source
        self.policy = policy or policy_from_settings()
        self._locks: Dict[str, asyncio.Lock] = {}

    def is_running(self, credential: str) -> bool:
        lock = self._locks.get(self._lock_key(credential))
        return bool(lock and lock.locked())

    async def run_cycle(self, credential: str) -> RefreshOutcome:
        key = self._lock_key(credential)
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            raise RefreshInProgressError("a refresh cycle is already running for this key", source="refresh")

        async with lock:
            try:
                with log.contextualize(key=key[:8]):
                    return await self._run(credential)
            finally:
                self._locks.pop(key, None)

    async def _run(self, credential: str) -> RefreshOutcome:
        started_at = datetime.now(timezone.utc)
        log.info("Refresh cycle started")

        holdings_result, catalog_result = await asyncio.gather(
            self.holdings_source.fetch_holdings(credential),
            self.catalog_source.fetch_catalog(),
            return_exceptions=True,
        )
        for outcome in (holdings_result, catalog_result):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        if isinstance(holdings_result, Exception):
            return self._aborted(holdings_result, started_at)

        snapshot = holdings_result
        # The holdings backend lists assets before their trade history is fetched
        is_refreshing = any(not holding.pairs for holding in snapshot.holdings)
        if not snapshot.holdings:
            return RefreshOutcome(
                status="empty",
                error_kind=ErrorKind.NOT_FOUND,
                message="no trade history found",
                last_update=snapshot.last_update,
                is_refreshing=is_refreshing,
                started_at=started_at,
                elapsed_ms=_elapsed_ms(started_at),
            )

        warnings: List[str] = []
        catalog: List[CatalogEntry] = []
        if isinstance(catalog_result, Exception):
            log.error(f"Catalog fetch failed, all symbols degrade to unmatched: {catalog_result}")
            warnings.append(f"catalog unavailable: {catalog_result}")
        else:
            catalog = catalog_result

        prices, price_warning = await self._fetch_prices(snapshot.holdings, catalog)
        if price_warning:
            warnings.append(price_warning)

        try:
            result = reconcile(snapshot.holdings, catalog, prices, self.policy)
        except Exception as exc:  # noqa: BLE001
            log.opt(exception=exc).error(f"Reconciliation failed: {exc}")
            return RefreshOutcome(
                status="failed",
                error_kind=ErrorKind.MALFORMED_UPSTREAM,
                message="holdings could not be valued",
                last_update=snapshot.last_update,
                is_refreshing=is_refreshing,
                started_at=started_at,
                elapsed_ms=_elapsed_ms(started_at),
            )

        status = "ok"
        if warnings or result.unmatched_symbols or result.totals.incomplete:
            status = "partial"
        if result.unmatched_symbols:
            warnings.append(f"no price for {', '.join(result.unmatched_symbols)}")

        elapsed = _elapsed_ms(started_at)
        log.info(f"Refresh cycle finished | status={status} records={len(result.records)} refreshing={is_refreshing} elapsed_ms={elapsed}")
        return RefreshOutcome(
            status=status,
            result=result,
            error_kind=ErrorKind.PARTIAL_PRICE_UNAVAILABLE if status == "partial" else None,
            message="; ".join(warnings) or None,
            last_update=snapshot.last_update,
            is_refreshing=is_refreshing,
            started_at=started_at,
            elapsed_ms=elapsed,
        )

    async def _fetch_prices(self, holdings, catalog: List[CatalogEntry]) -> Tuple[Dict[str, PriceQuote], Optional[str]]:
        """Issue the single batched price query for every candidate id."""
        if not catalog:
            return {}, None

        symbols = self.policy.normalizer().symbols_to_resolve(holdings)
        ids = self.policy.matcher().candidate_ids(symbols, catalog)
        log.info(f"Requesting prices for {len(ids)} catalog ids ({len(symbols)} symbols)")
        try:
            return await self.catalog_source.fetch_prices(ids), None
        except ValuationError as exc:
            log.error(f"Price fetch failed, all symbols degrade to unmatched: {exc}")
            return {}, f"prices unavailable: {exc}"

    @staticmethod
    def _aborted(exc: Exception, started_at: datetime) -> RefreshOutcome:
        if isinstance(exc, ValuationError):
            kind = exc.kind
            message = str(exc)
        else:
            log.opt(exception=exc).error(f"Unexpected holdings failure: {exc}")
            kind = ErrorKind.UPSTREAM_UNAVAILABLE
            message = "holdings fetch failed"

        status = "empty" if kind == ErrorKind.NOT_FOUND else "failed"
        log.warning(f"Refresh cycle aborted | status={status} kind={kind.value} | {message}")
        return RefreshOutcome(
            status=status,
            error_kind=kind,
            message=message,
            started_at=started_at,
            elapsed_ms=_elapsed_ms(started_at),
        )

    @staticmethod
    def _lock_key(credential: str) -> str:
        return hashlib.sha256(credential.encode("utf-8")).hexdigest()


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


# Global instance holder for the service
_refresh_service: Optional[RefreshService] = None


def init_refresh_service(service: Optional[RefreshService] = None) -> RefreshService:
    """Create the process-wide refresh service with the default HTTP collaborators."""
    global _refresh_service
    if service is None:
        service = RefreshService(ExchangeHoldingsSource(), CoinGeckoSource())
    _refresh_service = service
    return service


def get_refresh_service() -> RefreshService:
    if _refresh_service is None:
        return init_refresh_service()
    return _refresh_service


async def shutdown_refresh_service() -> None:
    global _refresh_service
    if _refresh_service is None:
        return
    for source in (_refresh_service.holdings_source, _refresh_service.catalog_source):
        close = getattr(source, "aclose", None)
        if close is not None:
            await close()
    _refresh_service = None
