"""Chat message histories."""

from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Iterable, List

from .message import Message


class BaseChatMessageHistory(ABC):
    """Async store of conversation turns."""

    @abstractmethod
    async def get_messages(self) -> List[Message]:
        pass

    @abstractmethod
    async def add_message(self, message: Message) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    async def add_user_message(self, content: str) -> None:
        await self.add_message(Message.user(content))

    async def add_assistant_message(self, content: str) -> None:
        await self.add_message(Message.assistant(content))

    async def add_messages(self, messages: Iterable[Message]) -> None:
        for message in messages:
            await self.add_message(message)


class InMemoryChatMessageHistory(BaseChatMessageHistory):
    """Keeps every message for the lifetime of the object."""

    def __init__(self):
        self._messages: List[Message] = []

    async def get_messages(self) -> List[Message]:
        return list(self._messages)

    async def add_message(self, message: Message) -> None:
        self._messages.append(message)

    async def add_messages(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)

    async def clear(self) -> None:
        self._messages.clear()


class BufferWindowMemory(BaseChatMessageHistory):
    """Keeps only the last ``window_size`` messages."""

    def __init__(self, window_size: int):
        if window_size < 1:
            raise ValueError("window_size must be >= 1")
        self.window_size = window_size
        self._messages: Deque[Message] = deque(maxlen=window_size)

    async def get_messages(self) -> List[Message]:
        return list(self._messages)

    async def add_message(self, message: Message) -> None:
        self._messages.append(message)

    async def clear(self) -> None:
        self._messages.clear()
