"""Default session acquirer: cookie + crumb handshake over plain HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping

import aiohttp

from ..errors import AuthAcquisitionError


logger = logging.getLogger(__name__)


class CrumbAcquirer:
    """
    Mints a crumb/cookie pair without a browser.

    Step 1 hits the cookie endpoint, which answers (often with a 404) while
    setting the session cookie. Step 2 asks the crumb endpoint for the token
    that pairs with that cookie. A browser-automation acquirer can replace
    this class; anything matching the SessionAcquirer protocol works.
    """

    def __init__(
        self,
        cookie_url: str = "https://fc.yahoo.com",
        crumb_url: str = "https://query1.finance.yahoo.com/v1/test/getcrumb",
        user_agent: str | None = None,
        timeout: float = 10.0,
    ):
        self.cookie_url = cookie_url
        self.crumb_url = crumb_url
        self.user_agent = user_agent
        self.timeout = timeout

    async def __call__(self) -> tuple[str, Mapping[str, str]]:
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        jar = aiohttp.CookieJar(unsafe=True)  # Also keep cookies set by IP hosts

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=headers,
                cookie_jar=jar,
            ) as client:
                # Status is irrelevant here, only the Set-Cookie matters
                async with client.get(self.cookie_url, allow_redirects=True) as response:
                    await response.read()

                if len(jar) == 0:
                    raise AuthAcquisitionError(f"No session cookie set by {self.cookie_url}")

                async with client.get(self.crumb_url) as response:
                    crumb = (await response.text()).strip()
                    if response.status != 200:
                        raise AuthAcquisitionError(
                            f"Crumb endpoint returned {response.status}: {crumb[:200]}"
                        )

        except AuthAcquisitionError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthAcquisitionError(f"Session handshake failed: {e!r}") from e

        if not crumb or "<html" in crumb.lower():
            raise AuthAcquisitionError("Crumb endpoint returned an empty or invalid token")

        cookies = {cookie.key: cookie.value for cookie in jar}
        logger.info(f"Acquired crumb with {len(cookies)} cookie(s)")
        return crumb, cookies
