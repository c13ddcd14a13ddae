from contextlib import asynccontextmanager

from fastapi import FastAPI

from portfolio_valuation.api.routes import health, valuation
from portfolio_valuation.core.config import settings
from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.services.refresh_service import init_refresh_service, shutdown_refresh_service

log = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    init_refresh_service()
    log.info(f"Refresh service ready (holdings={settings.HOLDINGS_API_URL}, catalog={settings.COINGECKO_BASE_URL})")

    yield

    log.info("Shutting down services...")
    await shutdown_refresh_service()
    log.info("Application shutdown complete")


app = FastAPI(
    title="Portfolio Valuation",
    description="Reconciles exchange trade history with CoinGecko prices into a USD portfolio valuation",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(valuation.router)
app.include_router(health.router)
