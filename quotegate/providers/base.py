"""Base types and protocols for upstream collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Protocol

from ..models import Session


@dataclass(frozen=True)
class Request:
    """Upstream GET request.

    ``path`` is relative to the transport base URL unless it is absolute.
    """
    path: str
    params: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)


class SessionAcquirer(Protocol):
    """Mints a fresh (token, cookies) pair, e.g. via browser automation."""

    async def __call__(self) -> tuple[str, Mapping[str, str]]:
        """
        Raise AuthAcquisitionError (or any exception, which the SessionStore
        wraps into one) when no token can be produced.
        """
        ...


class Transport(Protocol):
    """HTTP capability used by the core."""

    async def get(self, request: Request, session: Session | None = None) -> Any:
        """
        Issue the request and return the decoded JSON body.

        Must raise AuthenticationFailure for 401/404 when ``session`` is given,
        and TransportFailure for every other failure.
        """
        ...


class TickConnection(Protocol):
    """One open upstream streaming connection scoped to a symbol set."""

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        ...

    async def close(self) -> None:
        ...


class TickSource(Protocol):
    """Opens dedicated streaming connections."""

    async def open(self, symbols: list[str]) -> TickConnection:
        """Connect and subscribe. Raise TransportFailure if that fails."""
        ...
