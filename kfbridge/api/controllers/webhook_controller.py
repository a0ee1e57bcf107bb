"""
Webhook controller for WeChat KF callbacks.

Terminates the platform's push protocol on one path:

- GET: URL verification. The signature covers ``echostr``; the decrypted
  echostr is returned as plain text.
- POST: event notification. The signature covers the ``Encrypt`` field of
  the XML body; the decrypted XML carries the one-shot sync ``Token`` and the
  ``OpenKfId``. "success" is written first and the sync is triggered from a
  background task that runs after the response, since the platform retries
  callbacks that are slow to answer.

Every response is text/plain.
"""

import re

from fastapi import Request
from fastapi.responses import PlainTextResponse
from starlette.background import BackgroundTask

from kfbridge.core.exceptions import CryptoError
from kfbridge.core.logging.logger import get_account_logger, get_logger
from kfbridge.core.runtime import BridgeRuntime


class PayloadTooLarge(Exception):
    """Request body exceeded the configured ceiling."""


def xml_tag(xml: str, tag: str) -> str | None:
    """
    Read the first ``<tag>`` value from a flat XML document.

    Handles both ``<![CDATA[...]]>`` and plain text content. A regex keeps
    the parser from ever expanding entities in attacker-supplied input.
    """
    name = re.escape(tag)
    match = re.search(
        rf"<{name}><!\[CDATA\[(.+?)\]\]></{name}>|<{name}>(.+?)</{name}>", xml
    )
    if match is None:
        return None
    return match.group(1) if match.group(1) is not None else match.group(2)


async def read_body_limited(request: Request, max_bytes: int) -> bytes:
    """
    Read the request body, giving up as soon as it exceeds max_bytes.

    Raises:
        PayloadTooLarge: When the body is larger than max_bytes
    """
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLarge()

    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise PayloadTooLarge()
        chunks.append(chunk)
    return b"".join(chunks)


def _text(content: str, status_code: int = 200, **kwargs) -> PlainTextResponse:
    return PlainTextResponse(content, status_code=status_code, **kwargs)


class WebhookController:
    """Verifies, decrypts and acknowledges platform callbacks."""

    def __init__(self):
        self.logger = get_logger(__name__)

    async def handle(self, request: Request) -> PlainTextResponse:
        """Entry point for every method on the webhook path."""
        runtime: BridgeRuntime | None = getattr(request.app.state, "kf_runtime", None)
        try:
            if runtime is None:
                raise RuntimeError("bridge runtime not initialized")
            if request.method == "GET":
                return self.verify_url(request, runtime)
            if request.method == "POST":
                return await self.receive_event(request, runtime)
            return _text("method not allowed", 405)
        except PayloadTooLarge:
            self.logger.warning(f"Rejected webhook body over {runtime.max_body_bytes} bytes")
            return _text("payload too large", 413)
        except Exception as e:
            self.logger.error(f"Webhook error: {e}", exc_info=not isinstance(e, CryptoError))
            return _text("internal error", 500)

    def verify_url(self, request: Request, runtime: BridgeRuntime) -> PlainTextResponse:
        params = request.query_params
        signature = params.get("msg_signature")
        timestamp = params.get("timestamp")
        nonce = params.get("nonce")
        echostr = params.get("echostr")

        if not signature or not timestamp or not nonce or not echostr:
            return _text("missing params", 400)
        if not runtime.codec.verify(timestamp, nonce, echostr, signature):
            self.logger.warning("URL verification signature mismatch")
            return _text("signature mismatch", 403)

        decrypted = runtime.codec.decrypt(echostr)
        self.logger.info("✅ Callback URL verified")
        return _text(decrypted.message)

    async def receive_event(
        self, request: Request, runtime: BridgeRuntime
    ) -> PlainTextResponse:
        params = request.query_params
        signature = params.get("msg_signature")
        timestamp = params.get("timestamp")
        nonce = params.get("nonce")

        body = await read_body_limited(request, runtime.max_body_bytes)
        encrypted = xml_tag(body.decode("utf-8", errors="replace"), "Encrypt")

        if not encrypted or not signature or not timestamp or not nonce:
            return _text("bad request", 400)
        if not runtime.codec.verify(timestamp, nonce, encrypted, signature):
            self.logger.warning("Callback signature mismatch")
            return _text("signature mismatch", 403)

        decrypted = runtime.codec.decrypt(encrypted)
        sync_token = xml_tag(decrypted.message, "Token") or ""
        account_id = xml_tag(decrypted.message, "OpenKfId") or ""

        return _text(
            "success",
            background=BackgroundTask(self.trigger_sync, runtime, account_id, sync_token),
        )

    async def trigger_sync(
        self, runtime: BridgeRuntime, account_id: str, sync_token: str
    ) -> None:
        """Runs after the response is sent; never raises."""
        if not account_id:
            self.logger.warning("Callback without OpenKfId, nothing to sync")
            return
        logger = get_account_logger(__name__, account_id)
        try:
            await runtime.registry.register(account_id)
            runtime.scheduler.trigger(account_id, sync_token)
            logger.debug("Sync triggered from callback")
        except Exception as e:
            logger.error(f"Webhook event processing error: {e}", exc_info=True)
