"""Invalidate-and-retry wrapper for token-requiring upstream calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from ..errors import AuthenticationFailure
from ..models import Session
from ..providers.base import Request, Transport
from .store import SessionStore


logger = logging.getLogger(__name__)


class RequestExecutor:
    """
    Runs authenticated requests against the transport.

    Only AuthenticationFailure is recovered (invalidate the session, retry
    with a fresh one). Every other error propagates unchanged on the first
    occurrence. Endpoints without a token requirement do not go through here.
    """

    def __init__(
        self,
        store: SessionStore,
        transport: Transport,
        max_auth_retries: int | None = None,
        retry_backoff: float = 0.0,
    ):
        """
        Args:
            store: Session store shared by every authenticated call
            transport: Upstream HTTP capability
            max_auth_retries: Cap on re-acquire attempts per call (None = unbounded)
            retry_backoff: Seconds slept before retry n, multiplied by n
        """
        self.store = store
        self.transport = transport
        self.max_auth_retries = max_auth_retries
        self.retry_backoff = retry_backoff

    async def execute(self, build_request: Callable[[Session], Request]) -> Any:
        retries = 0
        while True:
            session = await self.store.get_or_acquire()
            request = build_request(session)
            try:
                return await self.transport.get(request, session=session)
            except AuthenticationFailure as e:
                self.store.invalidate(session)
                if self.max_auth_retries is not None and retries >= self.max_auth_retries:
                    logger.error(f"Giving up on {request.path} after {retries} auth retries: {e}")
                    raise
                retries += 1
                logger.warning(f"Auth failure on {request.path} ({e}); retrying with a new session (retry {retries})")
                if self.retry_backoff > 0:
                    await asyncio.sleep(self.retry_backoff * retries)
