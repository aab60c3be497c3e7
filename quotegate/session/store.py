"""Process-wide crumb session with single-flight acquisition."""

from __future__ import annotations

import asyncio
import logging

from ..errors import AuthAcquisitionError
from ..models import Session
from ..providers.base import SessionAcquirer


logger = logging.getLogger(__name__)


class SessionStore:
    """
    Holds the one live Session and mints a new one on demand.

    Writers: get_or_acquire (on a miss) and invalidate.
    Readers: RequestExecutor, which only ever sees immutable snapshots.

    There is no expiry timer; a session is dropped only when a caller
    observes an authentication failure and calls invalidate().
    """

    def __init__(self, acquirer: SessionAcquirer) -> None:
        self._acquirer = acquirer
        self._session: Session | None = None
        self._pending: asyncio.Task | None = None
        self.acquisitions = 0
        self.invalidations = 0

    @property
    def current(self) -> Session | None:
        return self._session

    async def get_or_acquire(self) -> Session:
        """Return the live session, acquiring one if absent.

        Concurrent callers during an acquisition all await the same task and
        receive its result or its failure.
        """
        if self._session is not None:
            return self._session
        if self._pending is None:
            self._pending = asyncio.create_task(self._acquire(), name="session-acquire")
        # Shield so one caller's cancellation does not abort everyone's acquisition
        return await asyncio.shield(self._pending)

    def invalidate(self, stale: Session | None = None) -> None:
        """Discard the live session.

        With ``stale``, only discard if it is still the live one, so a caller
        holding an old snapshot cannot throw away a freshly minted session.
        """
        if self._session is None:
            return
        if stale is not None and stale is not self._session:
            logger.debug("Ignoring invalidation of an already replaced session")
            return
        self._session = None
        self.invalidations += 1
        logger.info(f"Session invalidated (total invalidations: {self.invalidations})")

    async def _acquire(self) -> Session:
        try:
            logger.info("Acquiring new upstream session...")
            try:
                token, cookies = await self._acquirer()
            except AuthAcquisitionError:
                raise
            except Exception as e:
                raise AuthAcquisitionError(f"Session acquisition failed: {e!r}") from e

            if not token:
                raise AuthAcquisitionError("Session acquirer returned an empty token")

            session = Session(token=token, cookies=cookies)
            self._session = session
            self.acquisitions += 1
            logger.info(f"Session acquired (total acquisitions: {self.acquisitions})")
            return session
        except AuthAcquisitionError as e:
            logger.error(f"Session acquisition failed: {e}")
            raise
        finally:
            self._pending = None
