"""
Health check endpoints.
"""

import time
from typing import Any

from fastapi import APIRouter, Request

from kfbridge.core.config.settings import settings
from kfbridge.core.logging.logger import get_app_logger

logger = get_app_logger()
router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic liveness check."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "version": settings.version,
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request) -> dict[str, Any]:
    """
    Sync pipeline state: known accounts, in-flight syncs, polling.

    Never exposes secrets or tokens.
    """
    runtime = getattr(request.app.state, "kf_runtime", None)
    poller = getattr(request.app.state, "kf_poller", None)

    detailed: dict[str, Any] = {
        "status": "healthy" if runtime is not None else "starting",
        "timestamp": time.time(),
        "application": {
            "name": "kfbridge",
            "version": settings.version,
            "environment": settings.environment,
        },
        "configuration": {
            "webhook_path": settings.webhook_path,
            "state_dir": settings.state_dir,
            "poll_interval": settings.poll_interval,
            "max_message_age": settings.max_message_age,
            "dm_policy": settings.dm_policy,
            "forwarding": bool(settings.forward_url),
        },
    }

    if runtime is not None:
        accounts = runtime.registry.list_active()
        detailed["sync"] = {
            "accounts": [
                {"account_id": a.account_id, "status": a.status.value} for a in accounts
            ],
            "in_flight": runtime.scheduler.in_flight,
            "access_token_cached": runtime.token_cache.has_token(
                runtime.client.credential
            ),
            "dedup_window": len(runtime.engine.dedup),
        }
    if poller is not None:
        detailed["polling"] = {
            "running": poller.running,
            "sweeps": poller.sweeps,
            "skipped_ticks": poller.skipped_ticks,
        }

    logger.debug("Detailed health check completed")
    return detailed
