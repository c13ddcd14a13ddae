"""Health routes - Liveness and catalog reachability checks."""

from fastapi import APIRouter, Depends, Query, Response

from portfolio_valuation.api.deps import get_service
from portfolio_valuation.core.config import settings
from portfolio_valuation.core.errors import ValuationError
from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.api import HealthResponse
from portfolio_valuation.services.refresh_service import RefreshService

router = APIRouter(prefix="/health", tags=["health"])
log = get_logger("health_routes")


@router.get("", response_model=HealthResponse)
async def health(
    response: Response,
    check_catalog: bool = Query(False, description="Also fetch the catalog to verify CoinGecko is reachable"),
    service: RefreshService = Depends(get_service),
):
    """
    Health check endpoint for load balancer and Docker health checks.

    With ``check_catalog=true`` the CoinGecko coin list is fetched and a 503 is
    returned when it is unreachable.
    """
    if not check_catalog:
        return HealthResponse(status="healthy", env=settings.ENV)

    try:
        await service.catalog_source.fetch_catalog()
    except ValuationError as exc:
        log.warning(f"Catalog health check failed: {exc}")
        response.status_code = 503
        return HealthResponse(status="degraded", env=settings.ENV, catalog_reachable=False)

    return HealthResponse(status="healthy", env=settings.ENV, catalog_reachable=True)
