"""
Periodic cleanup of expired sessions.

The reaper runs as an asyncio task on the server's event loop. Each tick is a
single synchronous sweep, so it never interleaves with an engine operation.
Members of a removed session are not notified.
"""

import asyncio
import contextlib
import logging
import os
from collections.abc import Callable
from datetime import datetime

from poker.models import utc_now
from poker.session_store import SessionStore

logger = logging.getLogger(__name__)

REAP_INTERVAL_SEC = float(os.getenv("REAP_INTERVAL_SEC", "300"))


class Reaper:
    """Sweeps expired sessions out of the store at a fixed interval."""

    def __init__(
        self,
        store: SessionStore,
        interval_sec: float = REAP_INTERVAL_SEC,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.interval_sec = interval_sec
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        removed = self.store.sweep_expired(self._clock())
        if removed:
            logger.info("Reaper removed %d expired session(s), %d remaining", removed, len(self.store))
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                self.run_once()
            except Exception:
                logger.exception("Reaper sweep failed")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Reaper started (interval %.0fs)", self.interval_sec)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Reaper stopped")
