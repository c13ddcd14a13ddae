# Services package
from portfolio_valuation.services.catalog_matcher import CatalogMatcher
from portfolio_valuation.services.metrics import MetricsCalculator
from portfolio_valuation.services.pair_normalizer import PairNormalizer
from portfolio_valuation.services.refresh_service import (
    RefreshService,
    get_refresh_service,
    init_refresh_service,
    shutdown_refresh_service,
)
from portfolio_valuation.services.valuation import MatchingPolicy, ValuationAssembler, reconcile

__all__ = [
    "CatalogMatcher",
    "MetricsCalculator",
    "PairNormalizer",
    "RefreshService",
    "get_refresh_service",
    "init_refresh_service",
    "shutdown_refresh_service",
    "MatchingPolicy",
    "ValuationAssembler",
    "reconcile",
]
