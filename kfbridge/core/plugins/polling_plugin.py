"""
Polling Plugin

Runs the PollingService for the lifetime of the app so accounts keep
syncing when webhook callbacks are lost.
"""

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI

from ..config.settings import settings
from ..sync.poller import PollingService

if TYPE_CHECKING:
    from ..factory.kf_builder import KfBridgeBuilder

logger = logging.getLogger(__name__)


class PollingPlugin:
    """
    Starts polling after the core runtime exists (priority 30) and stops it
    before the core drains syncs and closes the session.
    """

    def __init__(self, interval: float | None = None):
        self.interval = interval if interval is not None else settings.poll_interval
        self._service: PollingService | None = None

    def configure(self, builder: "KfBridgeBuilder") -> None:
        builder.add_startup_hook(self._polling_startup, priority=30)
        builder.add_shutdown_hook(self._polling_shutdown, priority=30)

    async def startup(self, app: FastAPI) -> None:
        await self._polling_startup(app)

    async def shutdown(self, app: FastAPI) -> None:
        await self._polling_shutdown(app)

    async def _polling_startup(self, app: FastAPI) -> None:
        if self.interval <= 0:
            logger.info("Polling fallback disabled")
            return
        runtime = getattr(app.state, "kf_runtime", None)
        if runtime is None:
            raise RuntimeError("PollingPlugin requires KfCorePlugin to start first")

        self._service = PollingService(runtime.engine, runtime.registry, self.interval)
        self._service.start()
        app.state.kf_poller = self._service

    async def _polling_shutdown(self, app: FastAPI) -> None:
        if self._service is None:
            return
        await self._service.stop()
        self._service = None
        if hasattr(app.state, "kf_poller"):
            del app.state.kf_poller
