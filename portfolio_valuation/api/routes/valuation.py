"""Valuation routes - Run a refresh cycle and return the valued holdings."""

import time
import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from portfolio_valuation.api.deps import get_credential, get_service
from portfolio_valuation.core.errors import ErrorKind, RefreshInProgressError
from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.api import ErrorResponse, ValuationResponse
from portfolio_valuation.services.refresh_service import RefreshService

router = APIRouter(prefix="/valuation", tags=["valuation"])
log = get_logger("valuation_routes")

# Cycle failures are reported as a bad gateway, except a rejected credential
FAILURE_STATUS_CODES = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.MALFORMED_UPSTREAM: 502,
    ErrorKind.UPSTREAM_UNAVAILABLE: 502,
}


@router.get(
    "",
    response_model=ValuationResponse,
    responses={409: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def get_valuation(
    credential: str = Depends(get_credential),
    service: RefreshService = Depends(get_service),
):
    """
    Run one refresh cycle for the key in ``X-API-Key``.

    - ``ok``: every held asset was priced
    - ``partial``: some prices are unknown; affected fields are null
    - ``empty``: no trade history yet for this key

    Records are sorted by percent differential, descending, unknown values last.
    """
    start = time.perf_counter()
    request_id = str(uuid.uuid4())

    try:
        outcome = await service.run_cycle(credential)
    except RefreshInProgressError as exc:
        log.info(f"Rejected overlapping refresh | request_id={request_id}")
        return JSONResponse(
            status_code=409,
            content=ErrorResponse(
                request_id=request_id,
                status="failed",
                error_kind=exc.kind,
                message=exc.message,
            ).model_dump(mode="json"),
        )

    if outcome.status == "failed":
        kind = outcome.error_kind or ErrorKind.UPSTREAM_UNAVAILABLE
        return JSONResponse(
            status_code=FAILURE_STATUS_CODES.get(kind, 502),
            content=ErrorResponse(
                request_id=request_id,
                status=outcome.status,
                error_kind=kind,
                message=outcome.message or "refresh failed",
            ).model_dump(mode="json"),
        )

    result = outcome.result
    latency_ms = int((time.perf_counter() - start) * 1000)
    return ValuationResponse(
        request_id=request_id,
        api_latency_ms=latency_ms,
        status=outcome.status,
        last_update=outcome.last_update,
        is_refreshing=outcome.is_refreshing,
        records=result.records if result else [],
        unmatched_symbols=result.unmatched_symbols if result else [],
        totals=result.totals if result else None,
        message=outcome.message,
    )
