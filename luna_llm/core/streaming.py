"""Single-assignment results and a single-writer, multi-reader event channel."""

import asyncio
import logging
from typing import Any, Callable, Dict, Generic, List, Optional, Set, TypeVar

from .exceptions import DeferredAlreadySettledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deferred(Generic[T]):
    """A value that is resolved or rejected exactly once and awaited any number of times.

    ``on_wait`` runs every time somebody awaits the value; ``stream_text``
    uses it to start its producer lazily.
    """

    def __init__(self, name: str = "", on_wait: Optional[Callable[[], None]] = None):
        self.name = name
        self._on_wait = on_wait
        self._event = asyncio.Event()
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None

    @property
    def settled(self) -> bool:
        return self._event.is_set()

    def resolve(self, value: T) -> None:
        self._check_unsettled()
        self._value = value
        self._event.set()

    def reject(self, error: BaseException) -> None:
        self._check_unsettled()
        self._error = error
        self._event.set()

    def _check_unsettled(self) -> None:
        if self._event.is_set():
            raise DeferredAlreadySettledError(f"Deferred {self.name or id(self)} is already settled")

    def result(self) -> T:
        """Return the settled value without waiting."""
        if not self.settled:
            raise asyncio.InvalidStateError(f"Deferred {self.name or id(self)} is not settled yet")
        if self._error is not None:
            raise self._error
        return self._value

    async def wait(self) -> T:
        if self._on_wait is not None:
            self._on_wait()
        await self._event.wait()
        return self.result()

    def __await__(self):
        return self.wait().__await__()


class StreamBroadcaster(Generic[T]):
    """Fan one producer's items out to any number of readers.

    Items are kept in an append-only log and every reader has its own
    cursor, so a reader that joins late still sees the whole stream. The
    producer waits while an attached reader lags more than ``buffer_size``
    items behind. Readers detach on exhaustion or ``aclose()``.
    """

    def __init__(self, buffer_size: int = 256, on_demand: Optional[Callable[[], None]] = None):
        if buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self.buffer_size = buffer_size
        self._on_demand = on_demand
        self._items: List[T] = []
        self._cursors: Dict[int, int] = {}
        self._next_id = 0
        self._closed = False
        self._error: Optional[BaseException] = None
        self._changed = asyncio.Condition()
        self._wakers: Set[asyncio.Future] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def items(self) -> List[T]:
        return list(self._items)

    def subscribe(self) -> "StreamSubscription[T]":
        return StreamSubscription(self)

    async def publish(self, item: T) -> None:
        if self._closed:
            raise RuntimeError("Cannot publish to a closed stream")
        async with self._changed:
            await self._changed.wait_for(self._has_room)
            self._items.append(item)
            self._changed.notify_all()

    async def close(self, error: Optional[BaseException] = None) -> None:
        """Mark the end of the stream. Readers raise ``error`` once they reach it."""
        async with self._changed:
            if self._closed:
                return
            self._closed = True
            self._error = error
            self._changed.notify_all()

    def _has_room(self) -> bool:
        if not self._cursors:
            return True
        return len(self._items) - min(self._cursors.values()) < self.buffer_size

    def _attach(self) -> int:
        reader_id = self._next_id
        self._next_id += 1
        self._cursors[reader_id] = 0
        if self._on_demand is not None:
            self._on_demand()
        return reader_id

    async def _read(self, reader_id: int) -> T:
        async with self._changed:
            await self._changed.wait_for(
                lambda: self._cursors[reader_id] < len(self._items) or self._closed
            )
            position = self._cursors[reader_id]
            if position < len(self._items):
                self._cursors[reader_id] = position + 1
                self._changed.notify_all()
                return self._items[position]

            del self._cursors[reader_id]
            self._changed.notify_all()

        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def _detach(self, reader_id: int) -> None:
        async with self._changed:
            if self._cursors.pop(reader_id, None) is not None:
                self._changed.notify_all()

    def _forget(self, reader_id: int) -> None:
        if self._cursors.pop(reader_id, None) is not None:
            waker = asyncio.ensure_future(self._wake())
            self._wakers.add(waker)
            waker.add_done_callback(self._wakers.discard)

    async def _wake(self) -> None:
        async with self._changed:
            self._changed.notify_all()


class StreamSubscription(Generic[T]):
    """One reader of a :class:`StreamBroadcaster`. Attaches on first iteration."""

    def __init__(self, broadcaster: StreamBroadcaster[T]):
        self._broadcaster = broadcaster
        self._reader_id: Optional[int] = None
        self._done = False

    def __aiter__(self) -> "StreamSubscription[T]":
        return self

    async def __anext__(self) -> T:
        if self._done:
            raise StopAsyncIteration
        if self._reader_id is None:
            self._reader_id = self._broadcaster._attach()
        try:
            return await self._broadcaster._read(self._reader_id)
        except asyncio.CancelledError:
            self._done = True
            self._broadcaster._forget(self._reader_id)
            raise
        except BaseException:
            self._done = True
            raise

    async def aclose(self) -> None:
        if self._done:
            return
        self._done = True
        if self._reader_id is not None:
            await self._broadcaster._detach(self._reader_id)


async def drain(iterator) -> List[Any]:
    """Collect everything an async iterator yields."""
    return [item async for item in iterator]
