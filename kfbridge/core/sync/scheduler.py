"""
Fire-and-forget sync triggers.

Webhook callbacks must be answered before any sync work happens, so the
webhook hands its trigger to the scheduler, which runs the sync as a tracked
asyncio task. Tracking lets shutdown wait for in-flight syncs instead of
dropping them mid-page.
"""

import asyncio

from kfbridge.core.logging.logger import get_logger

from .sync_engine import SyncEngine, SyncReport

SHUTDOWN_TIMEOUT = 30.0


class SyncScheduler:
    """Runs engine syncs in the background and drains them on close()."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self._tasks: set[asyncio.Task] = set()
        self._closed = False
        self.logger = get_logger(__name__)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    def trigger(self, account_id: str, sync_token: str = "") -> asyncio.Task | None:
        """
        Schedule a sync for account_id on the running loop.

        Returns:
            The sync task, or None when the scheduler is closed or the id is empty
        """
        if self._closed:
            self.logger.warning(f"Scheduler closed, dropping trigger for {account_id}")
            return None
        if not account_id:
            self.logger.warning("Ignoring trigger without account id")
            return None

        task = asyncio.create_task(
            self._run(account_id, sync_token), name=f"kf_sync:{account_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, account_id: str, sync_token: str) -> SyncReport | None:
        try:
            return await self.engine.sync(account_id, sync_token)
        except asyncio.CancelledError:
            self.logger.warning(f"Sync for {account_id} cancelled")
            raise
        except Exception as e:
            # nobody awaits this task; the log is the only place the error lands
            self.logger.error(f"Background sync for {account_id} failed: {e}", exc_info=True)
            return None

    async def close(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Refuse new triggers and wait for in-flight syncs, cancelling on timeout."""
        self._closed = True
        pending = set(self._tasks)
        if not pending:
            return

        self.logger.info(f"Waiting for {len(pending)} in-flight sync(s)...")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            self.logger.warning(
                f"⚠️ {len(still_running)} sync(s) did not finish in {timeout}s, cancelling"
            )
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
