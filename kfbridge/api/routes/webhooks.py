"""
Webhook route for WeChat KF callbacks.

The route accepts every method so the controller can answer unsupported
ones with a plain-text 405, matching what the platform expects.
"""

from fastapi import APIRouter, Request

from kfbridge.api.controllers import WebhookController

WEBHOOK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_webhook_router(webhook_path: str) -> APIRouter:
    """
    Create the webhook router bound to webhook_path.

    Args:
        webhook_path: Callback path configured on the platform (e.g. /wechat-kf)

    Returns:
        APIRouter with the single callback endpoint
    """
    webhook_controller = WebhookController()
    router = APIRouter(
        tags=["Webhooks"],
        responses={
            400: {"description": "Missing parameters or malformed body"},
            403: {"description": "Signature mismatch"},
            405: {"description": "Method not allowed"},
            413: {"description": "Payload too large"},
            500: {"description": "Internal error"},
        },
    )

    @router.api_route(webhook_path, methods=WEBHOOK_METHODS)
    async def wechat_kf_callback(request: Request):
        """Handle URL verification (GET) and event notifications (POST)."""
        return await webhook_controller.handle(request)

    return router
