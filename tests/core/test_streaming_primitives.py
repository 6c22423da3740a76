"""Tests for Deferred and StreamBroadcaster."""

import asyncio

import pytest

from luna_llm.core import Deferred, DeferredAlreadySettledError, StreamBroadcaster
from luna_llm.core.streaming import drain


class TestDeferred:
    """Test suite for Deferred."""

    @pytest.mark.asyncio
    async def test_resolve_once(self):
        """Test that a value is delivered to every waiter."""
        deferred = Deferred("answer")

        waiters = [asyncio.ensure_future(deferred.wait()) for _ in range(3)]
        await asyncio.sleep(0)
        deferred.resolve(42)

        assert await asyncio.gather(*waiters) == [42, 42, 42]
        assert await deferred == 42
        assert deferred.result() == 42

    @pytest.mark.asyncio
    async def test_second_settle_raises(self):
        """Test that settling twice is an error."""
        deferred = Deferred("answer")
        deferred.resolve(1)

        with pytest.raises(DeferredAlreadySettledError):
            deferred.resolve(2)
        with pytest.raises(DeferredAlreadySettledError):
            deferred.reject(RuntimeError("late"))

        assert await deferred == 1

    @pytest.mark.asyncio
    async def test_reject(self):
        """Test that a rejection is raised to every waiter."""
        deferred = Deferred()
        deferred.reject(ValueError("bad"))

        with pytest.raises(ValueError, match="bad"):
            await deferred
        with pytest.raises(ValueError):
            deferred.result()

    @pytest.mark.asyncio
    async def test_result_before_settle(self):
        """Test that reading an unsettled value raises."""
        with pytest.raises(asyncio.InvalidStateError):
            Deferred("pending").result()

    @pytest.mark.asyncio
    async def test_on_wait_hook(self):
        """Test that awaiting runs the on_wait hook."""
        calls = []
        deferred = Deferred(on_wait=lambda: calls.append(1))
        deferred.resolve("x")

        await deferred
        await deferred

        assert calls == [1, 1]


class TestStreamBroadcaster:
    """Test suite for StreamBroadcaster."""

    @pytest.mark.asyncio
    async def test_readers_see_every_item(self):
        """Test that each reader gets the full sequence, including late ones."""
        channel = StreamBroadcaster(buffer_size=4)

        async def produce():
            for i in range(10):
                await channel.publish(i)
            await channel.close()

        first, second, _ = await asyncio.gather(
            drain(channel.subscribe()), drain(channel.subscribe()), produce()
        )

        assert first == list(range(10))
        assert second == list(range(10))
        assert await drain(channel.subscribe()) == list(range(10))

    @pytest.mark.asyncio
    async def test_backpressure(self):
        """Test that the producer waits for a slow reader."""
        channel = StreamBroadcaster(buffer_size=2)
        reader = channel.subscribe()
        first = asyncio.ensure_future(reader.__anext__())
        await asyncio.sleep(0)
        await channel.publish(0)
        assert await first == 0

        await channel.publish("a")
        await channel.publish("b")
        blocked = asyncio.ensure_future(channel.publish("c"))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        assert await reader.__anext__() == "a"
        await asyncio.wait_for(blocked, 1)
        assert channel.items == [0, "a", "b", "c"]
        await reader.aclose()

    @pytest.mark.asyncio
    async def test_closed_reader_releases_producer(self):
        """Test that a detached reader no longer holds the producer back."""
        channel = StreamBroadcaster(buffer_size=1)
        reader = channel.subscribe()
        first = asyncio.ensure_future(reader.__anext__())
        await asyncio.sleep(0)
        await channel.publish(1)
        assert await first == 1

        await channel.publish(2)
        await reader.aclose()
        await asyncio.wait_for(channel.publish(3), 1)

        assert channel.items == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_close_with_error(self):
        """Test that readers raise the close error after the last item."""
        channel = StreamBroadcaster()
        await channel.publish("x")
        await channel.close(RuntimeError("stream broke"))

        seen = []
        with pytest.raises(RuntimeError, match="stream broke"):
            async for item in channel.subscribe():
                seen.append(item)

        assert seen == ["x"]

    @pytest.mark.asyncio
    async def test_publish_after_close(self):
        """Test that a closed channel refuses new items."""
        channel = StreamBroadcaster()
        await channel.close()

        assert channel.closed is True
        with pytest.raises(RuntimeError):
            await channel.publish(1)

    @pytest.mark.asyncio
    async def test_on_demand_runs_on_first_read(self):
        """Test that subscribing alone does not trigger the demand hook."""
        calls = []
        channel = StreamBroadcaster(on_demand=lambda: calls.append(1))
        subscription = channel.subscribe()
        assert calls == []

        await channel.close()
        assert await drain(subscription) == []
        assert calls == [1]

    def test_invalid_buffer_size(self):
        """Test that the buffer must hold at least one item."""
        with pytest.raises(ValueError):
            StreamBroadcaster(buffer_size=0)
