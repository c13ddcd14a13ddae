"""API dependencies"""

from fastapi import Header, HTTPException

from portfolio_valuation.services.refresh_service import RefreshService, get_refresh_service


def get_service() -> RefreshService:
    """Refresh service dependency"""
    return get_refresh_service()


def get_credential(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> str:
    """Opaque exchange credential forwarded to the holdings collaborator."""
    if not x_api_key or not x_api_key.strip():
        raise HTTPException(status_code=401, detail="X-API-Key header is required")
    return x_api_key.strip()
