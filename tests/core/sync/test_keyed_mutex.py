"""Tests for the per-key FIFO mutex."""

import asyncio

import pytest

from kfbridge.core.sync.keyed_mutex import KeyedMutex


@pytest.mark.asyncio
class TestKeyedMutex:
    async def test_same_key_runs_one_at_a_time_in_arrival_order(self):
        mutex = KeyedMutex()
        active = 0
        peak = 0
        order: list[int] = []

        async def worker(n: int):
            nonlocal active, peak
            async with mutex.acquire("wkA"):
                active += 1
                peak = max(peak, active)
                order.append(n)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(worker(n) for n in range(5)))

        assert peak == 1
        assert order == [0, 1, 2, 3, 4]

    async def test_different_keys_do_not_block(self):
        mutex = KeyedMutex()
        inside_a = asyncio.Event()
        release_a = asyncio.Event()

        async def hold_a():
            async with mutex.acquire("wkA"):
                inside_a.set()
                await release_a.wait()

        task = asyncio.create_task(hold_a())
        await inside_a.wait()

        async with mutex.acquire("wkB"):
            assert mutex.locked("wkA")

        release_a.set()
        await task

    async def test_slot_removed_after_release(self):
        mutex = KeyedMutex()

        async with mutex.acquire("wkA"):
            assert mutex.locked("wkA")
            assert len(mutex) == 1

        assert not mutex.locked("wkA")
        assert len(mutex) == 0

    async def test_released_on_exception(self):
        mutex = KeyedMutex()

        with pytest.raises(RuntimeError):
            async with mutex.acquire("wkA"):
                raise RuntimeError("boom")

        assert not mutex.locked("wkA")

    async def test_cancelled_waiter_passes_turn_on(self):
        mutex = KeyedMutex()
        release_first = asyncio.Event()
        order: list[str] = []

        async def first():
            async with mutex.acquire("wkA"):
                order.append("first")
                await release_first.wait()

        async def waiter(name: str):
            async with mutex.acquire("wkA"):
                order.append(name)

        t1 = asyncio.create_task(first())
        await asyncio.sleep(0)
        t2 = asyncio.create_task(waiter("second"))
        await asyncio.sleep(0)
        t3 = asyncio.create_task(waiter("third"))
        await asyncio.sleep(0)

        t2.cancel()
        await asyncio.sleep(0)
        release_first.set()

        await asyncio.wait_for(asyncio.gather(t1, t3), timeout=1)
        assert t2.cancelled()
        assert order == ["first", "third"]
        assert len(mutex) == 0
