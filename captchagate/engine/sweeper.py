"""Periodic background eviction of expired challenges."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from captchagate.engine.lifecycle import ChallengeLifecycleEngine

logger = structlog.get_logger(__name__)


class ExpirySweeper:
    """Runs ``engine.sweep_expired()`` on a fixed interval.

    Expiry is also enforced lazily on every read, so the sweeper only bounds
    memory held by challenges nobody comes back for.
    """

    def __init__(self, engine: ChallengeLifecycleEngine, interval_seconds: float = 60.0) -> None:
        self._engine = engine
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Sweep once and return the number of evicted challenges."""
        return self._engine.sweep_expired()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="challenge-expiry-sweeper")
        logger.info("sweeper_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sweeper_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                # The store lock is a threading lock; keep it off the event loop
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("sweeper_error")
