"""Yahoo Finance REST transport (aiohttp)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urljoin

import aiohttp

from ..errors import AuthenticationFailure, GatewayError, TransportFailure
from ..models import Session
from .base import Request


logger = logging.getLogger(__name__)

# On token endpoints these statuses mean the crumb/cookie pair went stale
AUTH_FAILURE_STATUSES = frozenset({401, 404})


def classify_status(status: int, authenticated: bool) -> type[GatewayError] | None:
    """
    Map an HTTP status onto the error kind the retry policy depends on.

    Returns None for success, AuthenticationFailure only for 401/404 on a
    request that carried session credentials, TransportFailure otherwise.
    """
    if 200 <= status < 300:
        return None
    if authenticated and status in AUTH_FAILURE_STATUSES:
        return AuthenticationFailure
    return TransportFailure


def cookie_header(session: Session) -> str:
    return "; ".join(f"{name}={value}" for name, value in session.cookies.items())


class YahooTransport:
    """Issues GET requests against the Yahoo Finance API and decodes JSON."""

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com/",
        user_agent: str | None = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.user_agent = user_agent
        self.timeout = timeout
        self._client: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "YahooTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_client(self) -> aiohttp.ClientSession:
        if self._client is None or self._client.closed:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=headers,
                # Credentials travel explicitly per request; never keep response cookies
                cookie_jar=aiohttp.DummyCookieJar(),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.closed:
            await self._client.close()
        self._client = None

    async def get(self, request: Request, session: Session | None = None) -> Any:
        url = urljoin(self.base_url, request.path)
        headers = dict(request.headers)
        if session is not None:
            headers["Cookie"] = cookie_header(session)

        try:
            async with self._get_client().get(url, params=dict(request.params), headers=headers) as response:
                error_cls = classify_status(response.status, authenticated=session is not None)
                if error_cls is not None:
                    text = await response.text()
                    logger.warning(f"Upstream error {response.status} for {request.path}: {text[:200]}")
                    raise error_cls(
                        f"Upstream returned {response.status} for {request.path}",
                        status=response.status,
                    )
                return await response.json(content_type=None)

        except (AuthenticationFailure, TransportFailure):
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Network error fetching {request.path}: {e!r}")
            raise TransportFailure(f"Network error fetching {request.path}: {e!r}") from e
        except ValueError as e:
            # Body was not JSON
            raise TransportFailure(f"Undecodable response for {request.path}: {e}") from e
