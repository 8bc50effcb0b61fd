from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

from parley.errors import ChannelDisconnected
from parley.types import Message


@dataclass(frozen=True)
class Quit:
    """Any actor receiving this should put its affairs in order."""


@dataclass(frozen=True)
class UserMessage:
    text: str


@dataclass(frozen=True)
class RetryRequested:
    """The user asks for another attempt after a failed reply."""


@dataclass(frozen=True)
class ConversationUpdated:
    messages: tuple[Message, ...]


@dataclass(frozen=True)
class StatusUpdated:
    text: str


Event = Union[Quit, UserMessage, RetryRequested, ConversationUpdated, StatusUpdated]


class EventChannel:
    """Unbounded FIFO queue with a non-blocking receive side."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._closed = False

    def send(self, event: Event) -> None:
        if self._closed:
            raise ChannelDisconnected(f"{self.name} channel is closed")
        self._queue.put_nowait(event)

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def try_receive(self) -> Optional[Event]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            if self._closed:
                raise ChannelDisconnected(f"{self.name} channel disconnected") from None
            return None

    def drain(self) -> Iterator[Event]:
        while True:
            event = self.try_receive()
            if event is None:
                return
            yield event


@dataclass
class EventChannels:
    to_frontend: EventChannel = field(default_factory=lambda: EventChannel("frontend"))
    to_backend: EventChannel = field(default_factory=lambda: EventChannel("backend"))
    to_app: EventChannel = field(default_factory=lambda: EventChannel("app"))
