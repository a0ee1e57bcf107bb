"""
KF Core Plugin

Foundation of every bridge app: logging, the shared HTTP session, the
service runtime, middleware and routes.
"""

from typing import TYPE_CHECKING

import aiohttp
from fastapi import FastAPI

from kfbridge.api.middleware.error_handler import ErrorHandlerMiddleware
from kfbridge.api.middleware.request_logging import RequestLoggingMiddleware
from kfbridge.api.routes.health import router as health_router
from kfbridge.api.routes.webhooks import create_webhook_router
from kfbridge.core.exceptions import KfBridgeError
from kfbridge.domain.interfaces.dispatch_interface import IMessageDispatcher

from ..config.settings import Settings, settings
from ..logging.logger import get_app_logger, setup_app_logging
from ..runtime import BridgeRuntime

if TYPE_CHECKING:
    from ..factory.kf_builder import KfBridgeBuilder


class KfCorePlugin:
    """
    Core bridge functionality as a plugin.

    Startup (priority 10, first):
    - Logging setup
    - Shared aiohttp session with connection pooling
    - BridgeRuntime (codec, client, token cache, registry, engine, scheduler)
    - Registry load from the state directory
    - One access-token fetch to surface credential problems early

    Shutdown (priority 10, last): drain in-flight syncs, close the session.
    """

    def __init__(
        self,
        dispatcher: IMessageDispatcher | None = None,
        config: Settings | None = None,
        validate_token: bool = True,
    ):
        self.dispatcher = dispatcher
        self.config = config or settings
        self.validate_token = validate_token

    def configure(self, builder: "KfBridgeBuilder") -> None:
        # lower priority wraps outermost
        builder.add_middleware(
            ErrorHandlerMiddleware, priority=10, webhook_path=self.config.webhook_path
        )
        builder.add_middleware(RequestLoggingMiddleware, priority=20)

        builder.add_router(health_router)
        builder.add_router(create_webhook_router(self.config.webhook_path))

        builder.add_startup_hook(self._core_startup, priority=10)
        builder.add_shutdown_hook(self._core_shutdown, priority=10)

    async def startup(self, app: FastAPI) -> None:
        await self._core_startup(app)

    async def shutdown(self, app: FastAPI) -> None:
        await self._core_shutdown(app)

    async def _core_startup(self, app: FastAPI) -> None:
        setup_app_logging()
        logger = get_app_logger()
        config = self.config

        logger.info(f"🚀 Starting kfbridge v{config.version}")
        logger.info(f"📊 Environment: {config.environment}")
        logger.info(f"📝 Log level: {config.log_level}")
        logger.info(f"💾 State dir: {config.state_dir}")

        config.validate_credentials()

        connector = aiohttp.TCPConnector(
            limit=100, keepalive_timeout=30, enable_cleanup_closed=True
        )
        session = aiohttp.ClientSession(
            connector=connector, timeout=aiohttp.ClientTimeout(total=30)
        )
        app.state.http_session = session

        try:
            runtime = BridgeRuntime.create(config, session, self.dispatcher)
        except KfBridgeError:
            await session.close()
            del app.state.http_session
            raise
        app.state.kf_runtime = runtime

        await runtime.registry.load(config.state_dir)
        logger.info(f"📇 Known accounts: {len(runtime.registry)}")

        if self.validate_token:
            try:
                await runtime.token_cache.get(runtime.client.credential)
                logger.info("✅ access_token validated")
            except KfBridgeError as e:
                logger.warning(f"⚠️ access_token validation failed: {e}")

        logger.info(f"📍 Webhook path: {config.webhook_path}")
        logger.info(f"📤 Dispatcher: {type(runtime.dispatcher).__name__}")

    async def _core_shutdown(self, app: FastAPI) -> None:
        logger = get_app_logger()
        logger.info("🛑 Stopping kfbridge core...")

        runtime: BridgeRuntime | None = getattr(app.state, "kf_runtime", None)
        if runtime is not None:
            await runtime.close()
            del app.state.kf_runtime

        session = getattr(app.state, "http_session", None)
        if session is not None:
            await session.close()
            del app.state.http_session
            logger.info("🌐 HTTP session closed")
