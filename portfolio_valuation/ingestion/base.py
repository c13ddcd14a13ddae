"""Abstract collaborator interfaces for a refresh cycle."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

import httpx

from portfolio_valuation.core.errors import MalformedUpstreamError, UpstreamUnavailableError
from portfolio_valuation.schemas.domain import CatalogEntry, HoldingsSnapshot, PriceQuote


class HoldingsSource(ABC):
    """Returns the trade aggregates and balances scoped by an opaque credential."""

    name: str

    @abstractmethod
    async def fetch_holdings(self, credential: str) -> HoldingsSnapshot:
        """Raise ``HoldingsNotFoundError`` when there is no trade history."""


class CatalogSource(ABC):
    name: str

    @abstractmethod
    async def fetch_catalog(self) -> List[CatalogEntry]:
        """Return the full ``{id, symbol}`` catalog list."""

    @abstractmethod
    async def fetch_prices(self, ids: Sequence[str]) -> Dict[str, PriceQuote]:
        """Return USD quotes for ``ids`` in one batched request."""


class HttpSource:
    """Shared httpx plumbing: one client per source, JSON decoding, error mapping."""

    name = "http"

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def aclose(self) -> None:
        await self.client.aclose()

    async def get_json(self, url: str, **kwargs) -> object:
        try:
            resp = await self.client.get(url, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"request failed: {exc}", source=self.name) from exc

        self.check_status(resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedUpstreamError("response is not valid JSON", source=self.name) from exc

    def check_status(self, resp: httpx.Response) -> None:
        if resp.is_error:
            raise UpstreamUnavailableError(f"HTTP {resp.status_code} from {resp.request.url}", source=self.name)
