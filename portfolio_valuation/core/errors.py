"""Error taxonomy for refresh cycles.

Collaborator failures are raised as one of the exceptions below and mapped to an
``ErrorKind`` at the cycle boundary (see ``RefreshService``). Arithmetic edge
cases never raise; they surface as undefined metrics instead.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    PARTIAL_PRICE_UNAVAILABLE = "partial_price_unavailable"
    MALFORMED_UPSTREAM = "malformed_upstream"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    REFRESH_IN_PROGRESS = "refresh_in_progress"


class ValuationError(Exception):
    """Base class for collaborator and cycle errors."""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str, *, source: str | None = None):
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"[{self.source}] {self.message}"
        return self.message


class HoldingsNotFoundError(ValuationError):
    """No trade history exists for the credential."""

    kind = ErrorKind.NOT_FOUND


class UnauthorizedError(ValuationError):
    kind = ErrorKind.UNAUTHORIZED


class MalformedUpstreamError(ValuationError):
    """A collaborator answered with an unexpected payload shape."""

    kind = ErrorKind.MALFORMED_UPSTREAM


class UpstreamUnavailableError(ValuationError):
    """Transport failure or unexpected HTTP status from a collaborator."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class RefreshInProgressError(ValuationError):
    kind = ErrorKind.REFRESH_IN_PROGRESS
