from portfolio_valuation.api.routes.health import router as health_router
from portfolio_valuation.api.routes.valuation import router as valuation_router

__all__ = ["health_router", "valuation_router"]
