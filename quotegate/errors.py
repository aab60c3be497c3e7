"""Error taxonomy for gateway operations.

Only ``AuthenticationFailure`` is recovered internally (by the request
executor). Everything else surfaces to the caller unchanged.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all errors raised by the gateway core."""

    kind = "gateway"


class AuthAcquisitionError(GatewayError):
    """The session acquirer could not produce a token/cookie pair."""

    kind = "auth_acquisition"


class AuthenticationFailure(GatewayError):
    """Upstream rejected an authenticated request (401/404 on a token endpoint)."""

    kind = "authentication"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TransportFailure(GatewayError):
    """Any other upstream or network failure. Never retried."""

    kind = "transport"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ValidationFailure(GatewayError):
    """Caller-supplied arguments are invalid. Raised before any upstream call."""

    kind = "validation"
