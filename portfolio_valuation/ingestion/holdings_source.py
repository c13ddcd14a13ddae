"""Exchange holdings source (balances and per-pair trade aggregates)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from portfolio_valuation.core.config import settings
from portfolio_valuation.core.errors import (
    HoldingsNotFoundError,
    MalformedUpstreamError,
    UnauthorizedError,
    UpstreamUnavailableError,
)
from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.domain import AssetHolding, HoldingsSnapshot, TradeAggregate, TradeSnapshot
from .base import HoldingsSource, HttpSource

log = get_logger("ingestion.holdings")


class ExchangeHoldingsSource(HttpSource, HoldingsSource):
    """Reads the latest trade history snapshot for an API key.

    Expected payload::

        {"last_update": "...",
         "binance": {"BTC": {"balance": 0.5,
                             "distribution_total": 0,
                             "pairs": {"USDT": {"buy_qty": .., "cost": .., "sell_qty": ..,
                                                "revenue": .., "fees": {"BNB": ..},
                                                "earliest_trade": {..}, "latest_trade": {..}}}}}}
    """

    name = "holdings"

    def __init__(
        self,
        url: Optional[str] = None,
        exchange: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or settings.HOLDINGS_API_URL
        self.exchange = exchange or settings.HOLDINGS_EXCHANGE
        super().__init__(client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS))

    def check_status(self, resp: httpx.Response) -> None:
        if resp.status_code == 404:
            raise HoldingsNotFoundError("no trade history for this key", source=self.name)
        if resp.status_code in (401, 403):
            raise UnauthorizedError(f"credential rejected (HTTP {resp.status_code})", source=self.name)
        if resp.is_error:
            raise UpstreamUnavailableError(f"HTTP {resp.status_code}", source=self.name)

    async def fetch_holdings(self, credential: str) -> HoldingsSnapshot:
        data = await self.get_json(
            self.url,
            headers={"X-API-Key": credential, "Accept": "application/json"},
        )
        snapshot = self.parse_payload(data)
        log.info(f"Fetched {len(snapshot.holdings)} holdings from {self.exchange}")
        return snapshot

    def parse_payload(self, data: Any) -> HoldingsSnapshot:
        if not isinstance(data, dict):
            raise MalformedUpstreamError("holdings payload is not a JSON object", source=self.name)

        assets = data.get(self.exchange)
        if not assets:
            raise HoldingsNotFoundError(f"no {self.exchange} trade history", source=self.name)
        if not isinstance(assets, dict):
            raise MalformedUpstreamError(f"'{self.exchange}' section is not an object", source=self.name)

        try:
            holdings = [self._parse_asset(symbol, raw) for symbol, raw in assets.items()]
            return HoldingsSnapshot(holdings=holdings, last_update=data.get("last_update"))
        except (ValidationError, TypeError, ValueError, AttributeError) as exc:
            raise MalformedUpstreamError(f"invalid holdings payload: {exc}", source=self.name) from exc

    def _parse_asset(self, symbol: str, raw: Dict[str, Any]) -> AssetHolding:
        pairs = {
            quote: self._parse_pair(quote, pair)
            for quote, pair in (raw.get("pairs") or {}).items()
        }
        return AssetHolding(
            symbol=symbol,
            balance=raw.get("balance") or 0.0,
            pairs=pairs,
            distribution_total=raw.get("distribution_total") or 0.0,
        )

    def _parse_pair(self, quote: str, raw: Dict[str, Any]) -> TradeAggregate:
        return TradeAggregate(
            quote_currency=quote,
            buy_quantity=raw.get("buy_qty") or 0.0,
            total_cost=raw.get("cost") or 0.0,
            sell_quantity=raw.get("sell_qty") or 0.0,
            total_revenue=raw.get("revenue") or 0.0,
            earliest_trade=self._parse_trade(raw.get("earliest_trade")),
            latest_trade=self._parse_trade(raw.get("latest_trade")),
            fees=raw.get("fees") or {},
        )

    @staticmethod
    def _parse_trade(raw: Optional[Dict[str, Any]]) -> Optional[TradeSnapshot]:
        """Accept exchange-style (``Time``/``IsBuyer``/``Qty``) and snake_case trades."""
        if not raw:
            return None
        if "Time" in raw:
            trade_id = raw.get("ID")
            return TradeSnapshot(
                timestamp=_parse_timestamp(raw["Time"]),
                side="buy" if raw.get("IsBuyer") else "sell",
                quantity=raw.get("Qty") or 0.0,
                price=raw.get("Price") or 0.0,
                trade_id=str(trade_id) if trade_id not in (None, "") else None,
                commission=raw.get("Commission") or 0.0,
                commission_asset=raw.get("CommissionAsset") or None,
            )
        return TradeSnapshot.model_validate(raw)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        # Exchange APIs report epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ValueError(f"unsupported timestamp {value!r}")
