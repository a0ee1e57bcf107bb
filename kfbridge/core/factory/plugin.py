"""
Plugin protocol for KfBridgeBuilder.

A plugin registers middleware, routers and lifespan hooks in configure(),
then does its async work in startup()/shutdown().
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fastapi import FastAPI

    from .kf_builder import KfBridgeBuilder


class KfPlugin(Protocol):
    """Lifecycle contract every bridge plugin implements."""

    def configure(self, builder: "KfBridgeBuilder") -> None:
        """
        Register components with the builder.

        Runs synchronously at build time, before the FastAPI app exists.
        Anything that needs the event loop belongs in startup().
        """
        ...

    async def startup(self, app: "FastAPI") -> None:
        """Acquire resources (sessions, services, background tasks)."""
        ...

    async def shutdown(self, app: "FastAPI") -> None:
        """Release what startup() acquired, in reverse order."""
        ...
