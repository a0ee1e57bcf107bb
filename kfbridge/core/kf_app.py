"""
Main bridge application class.

KfBridge wraps KfBridgeBuilder with the core and polling plugins so the
common case is three lines:

    bridge = KfBridge()
    bridge.set_dispatcher(MyDispatcher())
    bridge.run()
"""

from collections.abc import Callable
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI

from .config.settings import Settings, settings
from .factory.kf_builder import KfBridgeBuilder
from .logging.logger import get_app_logger
from .plugins.kf_core_plugin import KfCorePlugin
from .plugins.polling_plugin import PollingPlugin

if TYPE_CHECKING:
    from kfbridge.domain.interfaces.dispatch_interface import IMessageDispatcher

    from .factory.plugin import KfPlugin


class KfBridge:
    """WeChat KF bridge application."""

    def __init__(self, config: Settings | None = None, polling: bool = True):
        """
        Args:
            config: Settings to run with (defaults to the environment)
            polling: Add the polling fallback (still off when KF_POLL_INTERVAL=0)
        """
        self.config = config or settings
        self._app: FastAPI | None = None
        self._builder = KfBridgeBuilder()
        self._core_plugin = KfCorePlugin(config=self.config)
        self._builder.add_plugin(self._core_plugin)
        if polling:
            self._builder.add_plugin(PollingPlugin(interval=self.config.poll_interval))

    def set_dispatcher(self, dispatcher: "IMessageDispatcher") -> "KfBridge":
        """Deliver admitted messages to dispatcher instead of the default."""
        if self._app is not None:
            raise RuntimeError("set_dispatcher() must be called before create_app()")
        self._core_plugin.dispatcher = dispatcher
        return self

    def add_plugin(self, plugin: "KfPlugin") -> "KfBridge":
        self._builder.add_plugin(plugin)
        return self

    def add_startup_hook(self, hook: Callable, priority: int = 50) -> "KfBridge":
        self._builder.add_startup_hook(hook, priority)
        return self

    def add_shutdown_hook(self, hook: Callable, priority: int = 50) -> "KfBridge":
        self._builder.add_shutdown_hook(hook, priority)
        return self

    def create_app(self) -> FastAPI:
        """Build the FastAPI app once and return it."""
        if self._app is None:
            overrides = {}
            if not self.config.is_development:
                overrides = {"docs_url": None, "redoc_url": None, "openapi_url": None}
            self._builder.configure(version=self.config.version, **overrides)
            self._app = self._builder.build()
        return self._app

    @property
    def asgi(self) -> FastAPI:
        """ASGI app for ``uvicorn module:bridge.asgi``."""
        return self.create_app()

    def run(self, host: str = "0.0.0.0", port: int | None = None, **kwargs) -> None:
        """Run the bridge with uvicorn (single process: the cursor store is not shared)."""
        logger = get_app_logger()
        app = self.create_app()
        port = port or self.config.port
        logger.info(f"🌐 Serving on http://{host}:{port}{self.config.webhook_path}")
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level=self.config.log_level.lower(),
            **kwargs,
        )
