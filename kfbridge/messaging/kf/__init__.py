"""WeChat KF platform integration: API client, token cache and schemas."""

from .client import KfClient
from .models import KfMessage, SyncMsgRequest, SyncMsgResponse
from .token_cache import TokenCache

__all__ = ["KfClient", "KfMessage", "SyncMsgRequest", "SyncMsgResponse", "TokenCache"]
