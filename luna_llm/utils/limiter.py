"""FIFO concurrency limiter for coroutine tasks."""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Set, Tuple

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[Any]]


class ConcurrencyLimiter:
    """Run at most ``max_concurrent`` tasks at once, starting them in FIFO order.

    ``add`` takes a zero-argument coroutine function and returns a future
    for its result. When a running task settles, the next queued task is
    started right away.
    """

    def __init__(self, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self._queue: Deque[Tuple[Task, asyncio.Future]] = deque()
        self._running = 0
        self._tasks: Set[asyncio.Future] = set()
        self._idle: Optional[asyncio.Event] = None

    @property
    def pending(self) -> int:
        """Number of tasks currently running."""
        return self._running

    @property
    def size(self) -> int:
        """Number of tasks waiting to start."""
        return len(self._queue)

    def add(self, task: Task) -> "asyncio.Future[Any]":
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append((task, future))
        self._busy()
        self._next()
        return future

    async def run(self, task: Task) -> Any:
        """Queue ``task`` and wait for its result."""
        return await self.add(task)

    async def on_idle(self) -> None:
        """Wait until nothing is queued or running. Safe to call repeatedly."""
        if self._running == 0 and not self._queue:
            return
        await self._idle_event().wait()

    def _idle_event(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
            if self._running == 0 and not self._queue:
                self._idle.set()
        return self._idle

    def _busy(self) -> None:
        self._idle_event().clear()

    def _next(self) -> None:
        while self._running < self.max_concurrent and self._queue:
            task, future = self._queue.popleft()
            if future.cancelled():
                continue
            self._running += 1
            running = asyncio.ensure_future(self._execute(task, future))
            self._tasks.add(running)
            running.add_done_callback(self._tasks.discard)

        if self._running == 0 and not self._queue:
            self._idle_event().set()

    async def _execute(self, task: Task, future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._running -= 1
            self._next()


def create_limiter(max_concurrent: int) -> ConcurrencyLimiter:
    return ConcurrencyLimiter(max_concurrent)
