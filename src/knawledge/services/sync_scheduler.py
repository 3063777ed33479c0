"""Periodic background synchronization."""

import logging
from typing import Optional

import anyio

from knawledge.exceptions import KnawledgeError
from knawledge.models.schema import SyncReport
from knawledge.services.document_service import DocumentService

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs ``DocumentService.sync`` on a fixed interval.

    A failed pass is logged and the next one runs on schedule; the
    catalog is brought up to date by whichever pass next succeeds.
    Passes started by the scheduler never overlap each other, but they
    can overlap passes triggered elsewhere.
    """

    def __init__(self, service: DocumentService, interval: float):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.service = service
        self.interval = interval
        self.passes = 0
        self.failures = 0
        self.last_report: Optional[SyncReport] = None
        self._cancel_scope: Optional[anyio.CancelScope] = None

    async def run_once(self) -> Optional[SyncReport]:
        """Run one pass, logging instead of raising on failure."""
        self.passes += 1
        try:
            self.last_report = await self.service.sync()
            return self.last_report
        except (KnawledgeError, OSError) as e:
            self.failures += 1
            logger.error(f"Synchronization pass failed: {e}")
            return None

    async def run(self) -> None:
        """Sync immediately, then every ``interval`` seconds until stopped."""
        with anyio.CancelScope() as scope:
            self._cancel_scope = scope
            logger.info(f"Background sync every {self.interval}s")
            while True:
                await self.run_once()
                await anyio.sleep(self.interval)

    def stop(self) -> None:
        """Stop the loop started by ``run``."""
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
