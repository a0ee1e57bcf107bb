"""
Polling fallback.

Webhook callbacks can be lost (downtime, network, platform hiccups), so
every known, enabled account is also synced on a fixed interval. A sweep
runs accounts one after another; a tick that finds the previous sweep still
running is skipped rather than stacked.
"""

import asyncio

from kfbridge.core.logging.logger import get_logger
from kfbridge.persistence.account_registry import AccountRegistry

from .sync_engine import SyncEngine

DEFAULT_POLL_INTERVAL = 30.0


class PollingService:
    """Periodic sweep over registry accounts."""

    def __init__(
        self,
        engine: SyncEngine,
        registry: AccountRegistry,
        interval: float = DEFAULT_POLL_INTERVAL,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.engine = engine
        self.registry = registry
        self.interval = interval
        self._stop_event: asyncio.Event | None = None
        self._loop_task: asyncio.Task | None = None
        self._sweep_task: asyncio.Task | None = None
        self.sweeps = 0
        self.skipped_ticks = 0
        self.logger = get_logger(__name__)

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run(), name="kf_poller")
        self.logger.info(f"Polling fallback enabled (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop ticking, let the current account finish, then return."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        if self._sweep_task is not None:
            await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None
        self.logger.info("Polling stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            self.tick()

    def tick(self) -> asyncio.Task | None:
        """Start a sweep unless one is still running."""
        if self.sweeping:
            self.skipped_ticks += 1
            self.logger.debug("Previous poll sweep still running, skipping tick")
            return None
        self._sweep_task = asyncio.create_task(self.sweep(), name="kf_poll_sweep")
        return self._sweep_task

    async def sweep(self) -> int:
        """
        Sync every enabled account once, in registry order.

        Returns:
            Number of accounts synced
        """
        self.sweeps += 1
        synced = 0
        for account in self.registry.list_active():
            if self._stop_event is not None and self._stop_event.is_set():
                break
            if not account.enabled:
                continue
            self.logger.debug(f"Polling sync_msg for {account.account_id}")
            try:
                await self.engine.sync(account.account_id)
                synced += 1
            except Exception as e:
                self.logger.error(
                    f"Poll error for {account.account_id}: {e}", exc_info=True
                )
        return synced
