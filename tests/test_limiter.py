"""Tests for the FIFO concurrency limiter."""

from __future__ import annotations

import asyncio

import pytest

from mealweave.generation.limiter import ConcurrencyLimiter


class TestConcurrencyLimiter:
    """Tests for ConcurrencyLimiter."""

    def test_rejects_zero_limit(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(0)

    def test_unmatched_release(self):
        with pytest.raises(RuntimeError):
            ConcurrencyLimiter(1).release()

    def test_peak_never_exceeds_limit(self):
        limiter = ConcurrencyLimiter(2)

        async def work():
            await asyncio.sleep(0.01)
            return limiter.active

        async def main():
            return await asyncio.gather(*[limiter.run(work) for _ in range(6)])

        seen = asyncio.run(main())
        assert max(seen) <= 2
        assert limiter.peak == 2
        assert limiter.active == 0

    def test_fifo_admission(self):
        limiter = ConcurrencyLimiter(1)
        order = []

        async def waiter(name):
            async with limiter:
                order.append(name)

        async def main():
            await limiter.acquire()
            tasks = []
            for name in ("a", "b", "c"):
                tasks.append(asyncio.create_task(waiter(name)))
                await asyncio.sleep(0)
            assert limiter.waiting == 3
            limiter.release()
            await asyncio.gather(*tasks)

        asyncio.run(main())
        assert order == ["a", "b", "c"]

    def test_cancelled_waiter_is_removed(self):
        limiter = ConcurrencyLimiter(1)

        async def main():
            await limiter.acquire()
            task = asyncio.create_task(limiter.acquire())
            await asyncio.sleep(0)
            assert limiter.waiting == 1
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert limiter.waiting == 0
            limiter.release()

        asyncio.run(main())
        assert limiter.active == 0

    def test_release_on_error(self):
        limiter = ConcurrencyLimiter(1)

        async def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            asyncio.run(limiter.run(boom))
        assert limiter.active == 0
