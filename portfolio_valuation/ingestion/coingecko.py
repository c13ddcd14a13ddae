"""CoinGecko catalog and batched price source."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from portfolio_valuation.core.config import settings
from portfolio_valuation.core.errors import MalformedUpstreamError
from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.domain import CatalogEntry, PriceQuote
from .base import CatalogSource, HttpSource

log = get_logger("ingestion.coingecko")


class CoinGeckoSource(HttpSource, CatalogSource):
    """Fetches the coin list and simple USD prices from CoinGecko."""

    name = "coingecko"

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        if client is None:
            headers = {"Accept": "application/json"}
            if settings.CGEKO_KEY:
                headers["x-cg-demo-api-key"] = settings.CGEKO_KEY
            client = httpx.AsyncClient(
                base_url=settings.COINGECKO_BASE_URL,
                headers=headers,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        super().__init__(client)

    async def fetch_catalog(self) -> List[CatalogEntry]:
        data = await self.get_json("/coins/list")
        if not isinstance(data, list):
            raise MalformedUpstreamError("coin list is not a JSON array", source=self.name)

        entries: List[CatalogEntry] = []
        skipped = 0
        for item in data:
            entry = self._parse_entry(item)
            if entry is None:
                skipped += 1
                continue
            entries.append(entry)

        if skipped:
            log.warning(f"Skipped {skipped} malformed catalog items")
        log.info(f"Fetched {len(entries)} catalog entries from CoinGecko")
        return entries

    async def fetch_prices(self, ids: Sequence[str]) -> Dict[str, PriceQuote]:
        if not ids:
            return {}

        params = {
            "ids": ",".join(ids),
            "vs_currencies": "usd",
            "include_24hr_change": "true",
            "include_market_cap": "true",
        }
        data = await self.get_json("/simple/price", params=params)
        if not isinstance(data, dict):
            raise MalformedUpstreamError("price response is not a JSON object", source=self.name)

        quotes: Dict[str, PriceQuote] = {}
        for coin_id, payload in data.items():
            try:
                quotes[coin_id] = PriceQuote.model_validate(payload)
            except ValidationError as exc:
                # Only this id degrades to unmatched
                log.warning(f"Dropping invalid price for {coin_id}: {exc.errors()[0]['msg']}")

        missing = len(set(ids) - set(quotes))
        log.info(f"Fetched {len(quotes)} prices for {len(ids)} ids ({missing} missing)")
        return quotes

    @staticmethod
    def _parse_entry(item: Any) -> Optional[CatalogEntry]:
        if not isinstance(item, dict) or not item.get("id") or not item.get("symbol"):
            return None
        try:
            return CatalogEntry(id=item["id"], symbol=item["symbol"], name=item.get("name"))
        except ValidationError:
            return None
