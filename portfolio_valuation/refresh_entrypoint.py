"""Refresh entrypoint - Run one valuation cycle from the command line.

Usage:
    python -m portfolio_valuation.refresh_entrypoint              # uses HOLDINGS_API_KEY
    python -m portfolio_valuation.refresh_entrypoint <api-key>    # explicit credential
"""

import asyncio
import sys

from portfolio_valuation.core.config import settings
from portfolio_valuation.core.logging import get_logger
from portfolio_valuation.schemas.api import RefreshOutcome
from portfolio_valuation.services.refresh_service import init_refresh_service, shutdown_refresh_service

logger = get_logger("refresh_entrypoint")


async def run_refresh(credential: str) -> RefreshOutcome:
    """Run a single refresh cycle and release the HTTP clients."""
    service = init_refresh_service()
    try:
        return await service.run_cycle(credential)
    finally:
        await shutdown_refresh_service()


def main() -> RefreshOutcome:
    credential = sys.argv[1] if len(sys.argv) > 1 else settings.HOLDINGS_API_KEY
    if not credential:
        logger.error("No credential given. Pass it as an argument or set HOLDINGS_API_KEY")
        sys.exit(2)

    logger.info("Refresh starting...")
    outcome = asyncio.run(run_refresh(credential))
    logger.info(f"Refresh completed: status={outcome.status} elapsed_ms={outcome.elapsed_ms}")

    print(outcome.model_dump_json(indent=2))

    if outcome.status == "failed":
        sys.exit(1)
    return outcome


if __name__ == "__main__":
    main()
