"""
HTTP forwarding dispatcher.

POSTs each envelope as JSON to a configured URL using the shared aiohttp
session, the same session the KF client uses.
"""

import asyncio

import aiohttp

from kfbridge.core.exceptions import TransportError
from kfbridge.core.logging.logger import get_logger

from ..interfaces.dispatch_interface import IMessageDispatcher, InboundEnvelope

FORWARD_TIMEOUT = 30


class HttpForwardDispatcher(IMessageDispatcher):
    """Forward admitted messages to a downstream HTTP endpoint."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        timeout: float = FORWARD_TIMEOUT,
    ):
        self.session = session
        self.url = url
        self.timeout = timeout
        self.logger = get_logger(__name__)

    async def dispatch(self, envelope: InboundEnvelope) -> None:
        """
        POST the envelope.

        Raises:
            TransportError: On non-2xx responses, timeouts and network errors
        """
        try:
            async with self.session.post(
                self.url,
                json=envelope.model_dump(mode="json"),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    raise TransportError(
                        f"forward HTTP {response.status}: {body[:200]}",
                        status=response.status,
                    )
        except aiohttp.ClientError as e:
            raise TransportError(f"forward request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"forward timed out after {self.timeout}s") from e

        self.logger.debug(f"Forwarded {envelope.message_id} to {self.url}")
