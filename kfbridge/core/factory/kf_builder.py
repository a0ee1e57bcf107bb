"""
KfBridgeBuilder - FastAPI application factory.

Plugins contribute middleware, routers and lifespan hooks; build() turns them
into one FastAPI app whose lifespan runs startup hooks in ascending priority
and shutdown hooks in descending priority, so a plugin that starts first is
torn down last.
"""

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI

from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from .plugin import KfPlugin

LifespanHook = Callable[[FastAPI], Awaitable[None]]


class KfBridgeBuilder:
    """
    Fluent builder for the bridge application.

    Example:
        app = (KfBridgeBuilder()
               .add_plugin(KfCorePlugin())
               .add_plugin(PollingPlugin())
               .configure(title="kfbridge")
               .build())

    Priority guidelines (startup runs low to high, shutdown high to low):
        10: core (logging, HTTP session, services)
        30: background services (polling)
        50: user hooks (default)
    """

    def __init__(self):
        self.plugins: list[KfPlugin] = []
        self.middlewares: list[tuple[type, dict, int]] = []  # (class, kwargs, priority)
        self.routers: list[tuple[Any, dict]] = []  # (router, include_kwargs)
        self.startup_hooks: list[tuple[LifespanHook, int]] = []
        self.shutdown_hooks: list[tuple[LifespanHook, int]] = []
        self.config_overrides: dict[str, Any] = {}

    def add_plugin(self, plugin: "KfPlugin") -> "KfBridgeBuilder":
        self.plugins.append(plugin)
        return self

    def add_middleware(
        self, middleware_class: type, priority: int = 50, **kwargs: Any
    ) -> "KfBridgeBuilder":
        """
        Add middleware. Lower priority wraps outermost.

        Args:
            middleware_class: Starlette middleware class
            priority: Ordering key (lower = outer)
            **kwargs: Middleware constructor arguments
        """
        self.middlewares.append((middleware_class, kwargs, priority))
        return self

    def add_router(self, router: Any, **kwargs: Any) -> "KfBridgeBuilder":
        self.routers.append((router, kwargs))
        return self

    def add_startup_hook(
        self, hook: LifespanHook, priority: int = 50
    ) -> "KfBridgeBuilder":
        """Register an async ``hook(app)`` run at startup, lowest priority first."""
        self.startup_hooks.append((hook, priority))
        return self

    def add_shutdown_hook(
        self, hook: LifespanHook, priority: int = 50
    ) -> "KfBridgeBuilder":
        """Register an async ``hook(app)`` run at shutdown, highest priority first."""
        self.shutdown_hooks.append((hook, priority))
        return self

    def configure(self, **overrides: Any) -> "KfBridgeBuilder":
        """Override FastAPI constructor arguments."""
        self.config_overrides.update(overrides)
        return self

    def build(self) -> FastAPI:
        """
        Build the FastAPI application.

        1. Let every plugin register its components (sync)
        2. Create the app with a lifespan running the hooks
        3. Add middleware in priority order
        4. Include routers
        """
        logger = get_app_logger()

        for plugin in self.plugins:
            plugin.configure(self)
        logger.debug(
            f"🔧 {len(self.plugins)} plugin(s) configured: {len(self.middlewares)} middlewares, "
            f"{len(self.routers)} routers, {len(self.startup_hooks)} startup hooks, "
            f"{len(self.shutdown_hooks)} shutdown hooks"
        )

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            try:
                await self._run_startup_hooks(app)
                yield
            finally:
                await self._run_shutdown_hooks(app)

        config = {
            "title": "kfbridge",
            "description": "WeChat KF webhook and message sync bridge",
            "version": "1.0.0",
            "lifespan": lifespan,
        }
        config.update(self.config_overrides)
        app = FastAPI(**config)

        # add_middleware prepends, so add the innermost first
        for middleware_class, kwargs, priority in sorted(
            self.middlewares, key=lambda item: item[2], reverse=True
        ):
            app.add_middleware(middleware_class, **kwargs)
            logger.debug(f"Added middleware {middleware_class.__name__} (priority: {priority})")

        for router, kwargs in self.routers:
            app.include_router(router, **kwargs)

        logger.debug(f"✅ Built app '{config['title']}'")
        return app

    async def _run_startup_hooks(self, app: FastAPI) -> None:
        logger = get_app_logger()
        for hook, priority in sorted(self.startup_hooks, key=lambda item: item[1]):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            logger.debug(f"⚡ Startup hook {hook_name} (priority: {priority})")
            try:
                await hook(app)
            except Exception as e:
                logger.error(f"❌ Startup hook {hook_name} failed: {e}", exc_info=True)
                raise

    async def _run_shutdown_hooks(self, app: FastAPI) -> None:
        logger = get_app_logger()
        for hook, priority in sorted(
            self.shutdown_hooks, key=lambda item: item[1], reverse=True
        ):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            logger.debug(f"🛑 Shutdown hook {hook_name} (priority: {priority})")
            try:
                await hook(app)
            except Exception as e:
                # keep going so later hooks still release their resources
                logger.error(f"❌ Shutdown hook {hook_name} failed: {e}", exc_info=True)
