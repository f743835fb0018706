"""TriggerWorker — reactive background worker for due scheduled commands."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from ..ports.scheduling import ICommandDispatcher

if TYPE_CHECKING:
    from ..ports.scheduling import ScheduledCommand
    from .trigger import CommandTriggerEngine, TriggerResult

logger = logging.getLogger("chronicle.scheduling")


class TriggerWorker(ICommandDispatcher):
    """Reactive worker that triggers due scheduled commands.

    Uses trigger + polling fallback. Call :meth:`wake` to run immediately;
    otherwise runs every ``poll_interval`` seconds. As an
    ``ICommandDispatcher`` it wakes itself whenever a command is scheduled.
    """

    def __init__(
        self,
        engine: CommandTriggerEngine,
        poll_interval: float = 60.0,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self._engine = engine
        self._poll_interval = poll_interval
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    def wake(self) -> None:
        """Wake the worker immediately."""
        self._wake.set()

    async def dispatch(self, record: ScheduledCommand) -> None:  # noqa: ARG002
        self.wake()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("TriggerWorker started (poll_interval=%.1fs)", self._poll_interval)

    async def stop(self) -> None:
        self._running = False
        self._wake.set()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._task, timeout=5.0)
            self._task = None
        logger.info("TriggerWorker stopped")

    async def run_once(self) -> TriggerResult:
        """Execute a single trigger pass (useful in tests)."""
        return await self._engine.trigger_due()

    async def _run_loop(self) -> None:
        while self._running:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=self._poll_interval)
            self._wake.clear()
            if not self._running:
                break
            try:
                await self.run_once()
            except Exception:
                logger.exception("TriggerWorker error")
