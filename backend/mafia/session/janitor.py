"""Periodic background cleanup of idle rooms and stale lobby players."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from mafia.session.manager import SessionManager
    from mafia.session.registry import SweepReport

logger = structlog.get_logger()

JANITOR_INTERVAL_SECONDS = 30


class Janitor:
    """Runs SessionManager.sweep on a fixed interval in its own task.

    A failing sweep is logged and the loop keeps going; the next tick sees
    a fresh snapshot of the registry.
    """

    def __init__(self, session_manager: SessionManager, interval: float = JANITOR_INTERVAL_SECONDS) -> None:
        self._session_manager = session_manager
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop. Idempotent."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("janitor started", interval=self._interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("janitor stopped")

    async def run_once(self, now: float | None = None) -> SweepReport:
        return await self._session_manager.sweep(now)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("janitor sweep failed")
