"""
WeChat KF API client.

Key Design Decisions:
- Pure dependency injection: the aiohttp session is owned by the app lifespan
- The access token travels as a query parameter, as the platform requires
- Token-expiry errcodes trigger exactly one invalidate + refetch + retry
"""

import asyncio
from typing import Any

import aiohttp
from pydantic import ValidationError

from kfbridge.core.exceptions import (
    PlatformError,
    TokenExpiredError,
    TransportError,
)
from kfbridge.core.logging.logger import get_logger
from kfbridge.domain.models.credentials import EnterpriseCredential

from ..constants import (
    API_POST_TIMEOUT,
    DEFAULT_API_BASE_URL,
    TOKEN_EXPIRED_CODES,
    TOKEN_FETCH_TIMEOUT,
)
from ..models import (
    AccessTokenResponse,
    SendMsgResponse,
    SyncMsgRequest,
    SyncMsgResponse,
)
from ..token_cache import TokenCache


class KfUrlBuilder:
    """Builds URLs for WeChat KF API endpoints."""

    def __init__(self, base_url: str = DEFAULT_API_BASE_URL):
        self.base_url = base_url.rstrip("/")

    def get_token_url(self) -> str:
        return f"{self.base_url}/gettoken"

    def get_sync_msg_url(self) -> str:
        return f"{self.base_url}/kf/sync_msg"

    def get_send_msg_url(self) -> str:
        return f"{self.base_url}/kf/send_msg"


def _raise_for_errcode(operation: str, data: dict[str, Any]) -> None:
    errcode = data.get("errcode", 0) or 0
    if errcode == 0:
        return
    errmsg = str(data.get("errmsg", ""))
    if errcode in TOKEN_EXPIRED_CODES:
        raise TokenExpiredError(operation, errcode, errmsg)
    raise PlatformError(operation, errcode, errmsg)


class KfClient:
    """
    WeChat KF API client with injected session and shared token cache.

    One client serves every account of a deployment: accounts differ only by
    the open_kfid filter on sync_msg, the enterprise credential is shared.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        credential: EnterpriseCredential,
        token_cache: TokenCache | None = None,
        base_url: str = DEFAULT_API_BASE_URL,
        logger: Any | None = None,
    ):
        """Initialize the client.

        Args:
            session: Persistent aiohttp session (managed by FastAPI lifespan)
            credential: Enterprise credential used to obtain access tokens
            token_cache: Shared token cache; one is created around this client if omitted
            base_url: API base URL (``https://qyapi.weixin.qq.com/cgi-bin``)
            logger: Pre-configured logger instance
        """
        self.session = session
        self.credential = credential
        self.token_cache = token_cache or TokenCache(self.fetch_access_token)
        self.url_builder = KfUrlBuilder(base_url)
        self.logger = logger or get_logger(__name__)

        self.logger.debug(
            f"KfClient initialized for corp {credential.corp_id} at {self.url_builder.base_url}"
        )

    # ------------------------------------------------------------------
    # Raw transport
    # ------------------------------------------------------------------

    async def _read_json(
        self, operation: str, response: aiohttp.ClientResponse
    ) -> dict[str, Any]:
        if response.status < 200 or response.status >= 300:
            try:
                error_text = await response.text()
            except aiohttp.ClientError:
                error_text = "Error reading response"
            self.logger.error(
                f"{operation} HTTP {response.status}: {error_text[:200]}"
            )
            raise TransportError(
                f"{operation} HTTP {response.status}: {error_text[:200]}",
                status=response.status,
            )
        try:
            data = await response.json(content_type=None)
        except ValueError as e:
            raise TransportError(f"{operation} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise TransportError(f"{operation} returned unexpected payload")
        return data

    async def get_request(
        self, operation: str, url: str, params: dict[str, Any], timeout: float
    ) -> dict[str, Any]:
        """Send a GET request and return the decoded JSON body.

        Raises:
            TransportError: For non-2xx responses, timeouts and network errors
        """
        try:
            async with self.session.get(
                url, params=params, timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                return await self._read_json(operation, response)
        except aiohttp.ClientError as e:
            self.logger.error(f"{operation} request failed: {e}")
            raise TransportError(f"{operation} request failed: {e}") from e
        except asyncio.TimeoutError as e:
            self.logger.error(f"{operation} timed out after {timeout}s")
            raise TransportError(f"{operation} timed out after {timeout}s") from e

    async def post_request(
        self,
        operation: str,
        url: str,
        payload: dict[str, Any],
        params: dict[str, Any],
        timeout: float = API_POST_TIMEOUT,
    ) -> dict[str, Any]:
        """Send a JSON POST request and return the decoded JSON body.

        Raises:
            TransportError: For non-2xx responses, timeouts and network errors
        """
        try:
            async with self.session.post(
                url,
                params=params,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                data = await self._read_json(operation, response)
                self.logger.debug(f"{operation} errcode={data.get('errcode', 0)}")
                return data
        except aiohttp.ClientError as e:
            self.logger.error(f"{operation} request failed: {e}")
            raise TransportError(f"{operation} request failed: {e}") from e
        except asyncio.TimeoutError as e:
            self.logger.error(f"{operation} timed out after {timeout}s")
            raise TransportError(f"{operation} timed out after {timeout}s") from e

    # ------------------------------------------------------------------
    # Token
    # ------------------------------------------------------------------

    async def fetch_access_token(
        self, credential: EnterpriseCredential
    ) -> tuple[str, int]:
        """Fetch a fresh access token from the platform (no caching).

        Returns:
            (access_token, expires_in seconds)

        Raises:
            TransportError: HTTP failure
            PlatformError: Non-zero errcode
        """
        data = await self.get_request(
            "gettoken",
            self.url_builder.get_token_url(),
            params={"corpid": credential.corp_id, "corpsecret": credential.app_secret},
            timeout=TOKEN_FETCH_TIMEOUT,
        )
        response = AccessTokenResponse.model_validate(data)
        if response.errcode != 0:
            raise PlatformError("gettoken", response.errcode, response.errmsg)
        if not response.access_token:
            raise PlatformError("gettoken", -1, "empty access_token")
        return response.access_token, response.expires_in

    async def call_api(
        self, operation: str, url: str, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """
        POST an authenticated API call, retrying once on token expiry.

        Raises:
            TransportError: HTTP failure on either attempt
            PlatformError: Non-zero errcode, including a token-expiry errcode
                that persists after the refresh
        """
        token = await self.token_cache.get(self.credential)
        data = await self.post_request(
            operation, url, payload, params={"access_token": token}
        )
        try:
            _raise_for_errcode(operation, data)
            return data
        except TokenExpiredError as e:
            self.logger.warning(
                f"{operation}: access_token rejected (errcode={e.errcode}), refreshing"
            )
            self.token_cache.invalidate(self.credential)

        token = await self.token_cache.get(self.credential)
        data = await self.post_request(
            operation, url, payload, params={"access_token": token}
        )
        try:
            _raise_for_errcode(operation, data)
        except TokenExpiredError as e:
            self.token_cache.invalidate(self.credential)
            raise PlatformError(operation, e.errcode, e.errmsg) from e
        return data

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def sync_messages(self, request: SyncMsgRequest) -> SyncMsgResponse:
        """Pull one page of messages (kf/sync_msg)."""
        data = await self.call_api(
            "sync_msg", self.url_builder.get_sync_msg_url(), request.to_payload()
        )
        try:
            return SyncMsgResponse.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"sync_msg returned malformed page: {e}") from e

    async def send_text_message(
        self, to_user: str, open_kfid: str, content: str
    ) -> SendMsgResponse:
        """Send a plain text message to a customer (kf/send_msg)."""
        data = await self.call_api(
            "send_msg",
            self.url_builder.get_send_msg_url(),
            {
                "touser": to_user,
                "open_kfid": open_kfid,
                "msgtype": "text",
                "text": {"content": content},
            },
        )
        return SendMsgResponse.model_validate(data)
