"""Tests for the concurrency limiter."""

import asyncio

import pytest

from luna_llm.utils import ConcurrencyLimiter, create_limiter


class TestConcurrencyLimiter:
    """Test suite for ConcurrencyLimiter."""

    @pytest.mark.asyncio
    async def test_bounded_and_fifo(self):
        """Test that at most two tasks run and queued tasks start in order."""
        limiter = create_limiter(2)
        running = 0
        peak = 0
        started = []
        completed = []

        def job(label: int, delay: float):
            async def run():
                nonlocal running, peak
                started.append(label)
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(delay)
                running -= 1
                completed.append(label)
                return label
            return run

        futures = [
            limiter.add(job(100, 0.1)),
            limiter.add(job(50, 0.05)),
            limiter.add(job(150, 0.15)),
        ]

        assert await asyncio.gather(*futures) == [100, 50, 150]
        assert peak == 2
        assert started == [100, 50, 150]
        assert completed == [50, 100, 150]

    @pytest.mark.asyncio
    async def test_counters(self):
        """Test pending and size while tasks wait."""
        limiter = ConcurrencyLimiter(1)
        gate = asyncio.Event()

        first = limiter.add(gate.wait)
        second = limiter.add(gate.wait)
        await asyncio.sleep(0)

        assert limiter.pending == 1
        assert limiter.size == 1

        gate.set()
        await asyncio.gather(first, second)
        assert limiter.pending == 0
        assert limiter.size == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_block_queue(self):
        """Test that a failing task rejects its future and the next one still runs."""
        limiter = ConcurrencyLimiter(1)

        async def fail():
            raise RuntimeError("nope")

        async def succeed():
            return "fine"

        failed = limiter.add(fail)
        ok = limiter.add(succeed)

        with pytest.raises(RuntimeError):
            await failed
        assert await ok == "fine"

    @pytest.mark.asyncio
    async def test_on_idle(self):
        """Test that on_idle waits for everything and can be awaited again."""
        limiter = ConcurrencyLimiter(2)
        done = []

        async def work(n):
            await asyncio.sleep(0.01 * n)
            done.append(n)

        for n in (3, 1, 2):
            limiter.add(lambda n=n: work(n))

        await limiter.on_idle()
        assert sorted(done) == [1, 2, 3]

        await asyncio.wait_for(limiter.on_idle(), 1)
        assert await limiter.run(lambda: work(0)) is None
        await limiter.on_idle()

    @pytest.mark.asyncio
    async def test_idle_when_unused(self):
        """Test that a fresh limiter is idle."""
        await asyncio.wait_for(ConcurrencyLimiter(3).on_idle(), 1)

    def test_invalid_limit(self):
        """Test that the limit must be positive."""
        with pytest.raises(ValueError):
            ConcurrencyLimiter(0)
