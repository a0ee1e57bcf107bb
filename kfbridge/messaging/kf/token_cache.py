"""
Access token cache with single-flight refresh.

Tokens are cached per enterprise credential (keyed by a hash of the secret)
and refreshed a safety margin before they expire. Concurrent misses for the
same credential share one in-flight fetch.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from kfbridge.core.logging.logger import get_logger
from kfbridge.domain.models.credentials import EnterpriseCredential

from .constants import TOKEN_REFRESH_MARGIN

# (token, expires_in seconds)
TokenFetcher = Callable[[EnterpriseCredential], Awaitable[tuple[str, int]]]

logger = get_logger(__name__)


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: float


class TokenCache:
    """
    In-memory access token cache.

    Lifecycle: construct once per process (or per test), reset() to drop all
    cached tokens. Tokens are never persisted.
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        refresh_margin: float = TOKEN_REFRESH_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        self._fetcher = fetcher
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._cache: dict[str, CachedToken] = {}
        self._pending: dict[str, asyncio.Task[str]] = {}

    async def get(self, credential: EnterpriseCredential) -> str:
        """
        Return a valid access token, fetching one if needed.

        Raises:
            Whatever the fetcher raises (TransportError, PlatformError); the
            error reaches every caller waiting on the same fetch.
        """
        key = credential.cache_key
        cached = self._cache.get(key)
        if cached and self._clock() < cached.expires_at - self.refresh_margin:
            return cached.token

        task = self._pending.get(key)
        if task is None:
            logger.debug("Fetching new access_token")
            task = asyncio.create_task(self._fetch(credential, key))
            self._pending[key] = task
            task.add_done_callback(lambda done: self._clear_pending(key, done))

        # shield: a cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(task)

    async def _fetch(self, credential: EnterpriseCredential, key: str) -> str:
        token, expires_in = await self._fetcher(credential)
        self._cache[key] = CachedToken(
            token=token, expires_at=self._clock() + expires_in
        )
        logger.info(f"access_token refreshed (expires_in={expires_in}s)")
        return token

    def _clear_pending(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        # mark the exception retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    def invalidate(self, credential: EnterpriseCredential) -> None:
        """Drop the cached token (e.g. after the platform reports it stale)."""
        if self._cache.pop(credential.cache_key, None) is not None:
            logger.debug("access_token cache cleared")

    def reset(self) -> None:
        self._cache.clear()

    def has_token(self, credential: EnterpriseCredential) -> bool:
        return credential.cache_key in self._cache

    @property
    def in_flight(self) -> int:
        return len(self._pending)
