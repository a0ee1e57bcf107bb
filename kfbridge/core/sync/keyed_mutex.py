"""
Per-key FIFO async mutex.

Each key owns a chain of futures: a caller waits on the tail it found, then
becomes the new tail. Waiters for the same key run strictly in arrival order,
different keys never block each other, and a key's slot disappears once its
chain drains.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedMutex:
    """FIFO mutual exclusion scoped by key (one account id per key)."""

    def __init__(self):
        self._tails: dict[str, asyncio.Future[None]] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        """
        Hold the lock for key for the duration of the ``async with`` block.

        A waiter cancelled while queued passes its turn on as soon as its
        predecessor releases, so the chain never stalls.
        """
        loop = asyncio.get_running_loop()
        previous = self._tails.get(key)
        current: asyncio.Future[None] = loop.create_future()
        self._tails[key] = current

        if previous is not None and not previous.done():
            try:
                await asyncio.shield(previous)
            except asyncio.CancelledError:
                previous.add_done_callback(lambda _: self._release(key, current))
                raise

        try:
            yield
        finally:
            self._release(key, current)

    def _release(self, key: str, current: asyncio.Future[None]) -> None:
        if not current.done():
            current.set_result(None)
        if self._tails.get(key) is current:
            del self._tails[key]

    def locked(self, key: str) -> bool:
        return key in self._tails

    def __len__(self) -> int:
        return len(self._tails)
