"""Resolve ticker symbols to priced CoinGecko catalog entries.

Matching runs in two phases around a single batched price query:

1. ``candidate_ids`` collects every catalog id whose symbol matches one of the
   requested symbols (case-insensitive) and survives the exclusion pattern.
2. ``match`` enriches those candidates with the price map and binds, per
   symbol, the candidate with the highest market cap.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.domain import CatalogEntry, MatchedPrice, PriceQuote

log = get_logger("catalog_matcher")

DEFAULT_EXCLUDE_PATTERN = "wormhole"


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


class CatalogMatcher:
    """Binds at most one catalog entry per symbol."""

    def __init__(self, exclude_pattern: Optional[str] = DEFAULT_EXCLUDE_PATTERN):
        self._exclude = re.compile(exclude_pattern, re.IGNORECASE) if exclude_pattern else None

    def is_excluded(self, entry: CatalogEntry) -> bool:
        return bool(self._exclude and self._exclude.search(entry.id))

    def candidates(
        self, symbols: Iterable[str], catalog: Sequence[CatalogEntry]
    ) -> Dict[str, List[CatalogEntry]]:
        """Group surviving catalog entries by requested symbol, in catalog order."""
        wanted: Set[str] = {normalize_symbol(s) for s in symbols if s and s.strip()}
        grouped: Dict[str, List[CatalogEntry]] = {symbol: [] for symbol in sorted(wanted)}

        for entry in catalog:
            symbol = normalize_symbol(entry.symbol)
            if symbol not in wanted:
                continue
            if self.is_excluded(entry):
                log.debug(f"Excluding bridged catalog entry {entry.id} for {symbol}")
                continue
            grouped[symbol].append(entry)
        return grouped

    def candidate_ids(self, symbols: Iterable[str], catalog: Sequence[CatalogEntry]) -> List[str]:
        """Ids for the single batched price query, deduplicated in catalog order."""
        seen: Set[str] = set()
        ids: List[str] = []
        for entries in self.candidates(symbols, catalog).values():
            for entry in entries:
                if entry.id not in seen:
                    seen.add(entry.id)
                    ids.append(entry.id)
        # Restore catalog order across symbols so the query is reproducible
        order = {entry.id: index for index, entry in enumerate(catalog)}
        return sorted(ids, key=lambda entry_id: order.get(entry_id, len(order)))

    def match(
        self,
        symbols: Iterable[str],
        catalog: Sequence[CatalogEntry],
        prices: Mapping[str, PriceQuote],
    ) -> Tuple[Dict[str, MatchedPrice], List[str]]:
        """Return ``(matched, unmatched)``.

        ``matched`` maps the upper-cased symbol to its bound entry and price and
        contains only symbols that resolved. ``unmatched`` lists every other
        requested symbol, sorted.
        """
        matched: Dict[str, MatchedPrice] = {}
        unmatched: List[str] = []

        for symbol, entries in self.candidates(symbols, catalog).items():
            best = self._select(entries, prices)
            if best is None:
                unmatched.append(symbol)
                continue
            matched[symbol] = MatchedPrice(
                entry=best,
                current_usd_price=best.usd_price,
                change_24h=best.usd_change_24h,
            )

        if unmatched:
            log.warning(f"No priced catalog entry for: {', '.join(unmatched)}")
        log.info(f"Catalog matching resolved {len(matched)} symbols, {len(unmatched)} unmatched")
        return matched, unmatched

    @staticmethod
    def _select(
        entries: Sequence[CatalogEntry], prices: Mapping[str, PriceQuote]
    ) -> Optional[CatalogEntry]:
        best: Optional[CatalogEntry] = None
        for entry in entries:
            quote = prices.get(entry.id)
            if quote is None or quote.usd is None:
                continue
            priced = entry.model_copy(
                update={
                    "usd_price": quote.usd,
                    "usd_change_24h": quote.usd_24h_change,
                    "usd_market_cap": quote.usd_market_cap or 0.0,
                }
            )
            # Strictly greater keeps the first occurrence on equal market caps
            if best is None or priced.usd_market_cap > best.usd_market_cap:
                best = priced
        return best
