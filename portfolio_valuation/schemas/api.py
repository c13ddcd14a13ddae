from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from portfolio_valuation.core.errors import ErrorKind
from portfolio_valuation.schemas.domain import PortfolioTotals, ValuationRecord, ValuationResult

RefreshStatus = Literal["ok", "partial", "empty", "failed"]


class RefreshOutcome(BaseModel):
    """Result of one refresh cycle.

    ``ok``: every asset priced. ``partial``: some pricing unknown. ``empty``: no
    trade history yet. ``failed``: the cycle aborted; ``error_kind`` says why.
    """

    status: RefreshStatus
    result: Optional[ValuationResult] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    last_update: Optional[datetime] = None
    # Some assets have no trade history yet; the backend is still fetching it
    is_refreshing: bool = False
    started_at: datetime
    elapsed_ms: int = 0


class ValuationResponse(BaseModel):
    request_id: str
    api_latency_ms: int
    status: RefreshStatus
    last_update: Optional[datetime] = None
    is_refreshing: bool = False
    records: list[ValuationRecord] = []
    unmatched_symbols: list[str] = []
    totals: Optional[PortfolioTotals] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    request_id: str
    status: RefreshStatus
    error_kind: ErrorKind
    message: str


class HealthResponse(BaseModel):
    status: str
    env: str
    catalog_reachable: Optional[bool] = None
