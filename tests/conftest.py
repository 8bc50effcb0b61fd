from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from parley.config import CompletionSettings, Settings
from parley.errors import CompletionError
from parley.terminal.display import DisplayView, KeyInput
from parley.types import Message


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeCompletion:
    """Hands out one future per request; tests settle them by hand."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.futures: list[asyncio.Future[Message]] = []

    def fetch_completion(
        self,
        id: int,
        prompt: str,
        responder_name: str,
        model: str,
        max_tokens: int,
    ) -> asyncio.Future[Message]:
        self.calls.append(
            {
                "id": id,
                "prompt": prompt,
                "responder_name": responder_name,
                "model": model,
                "max_tokens": max_tokens,
            }
        )
        future: asyncio.Future[Message] = asyncio.get_running_loop().create_future()
        self.futures.append(future)
        return future

    def reply(self, content: str) -> None:
        call = self.calls[-1]
        self.futures[-1].set_result(Message.create(id=call["id"], sender=call["responder_name"], content=content))

    def fail(self, message: str) -> None:
        self.futures[-1].set_exception(CompletionError(message))


class InstantCompletion:
    def __init__(self, content: str) -> None:
        self.content = content
        self.prompts: list[str] = []

    async def fetch_completion(
        self,
        id: int,
        prompt: str,
        responder_name: str,
        model: str,
        max_tokens: int,
    ) -> Message:
        self.prompts.append(prompt)
        return Message.create(id=id, sender=responder_name, content=self.content)


class FakeDisplay:
    def __init__(self, batches: Optional[list[list[KeyInput]]] = None) -> None:
        self.batches = list(batches or [])
        self.views: list[DisplayView] = []
        self.closed = False

    async def poll_input(self, timeout: float) -> list[KeyInput]:
        await asyncio.sleep(0)
        if self.batches:
            return self.batches.pop(0)
        return []

    def draw(self, view: DisplayView) -> None:
        self.views.append(view)

    async def close(self) -> None:
        self.closed = True


def typed(text: str) -> list[KeyInput]:
    return [KeyInput(key="space" if ch == " " else ch, character=ch) for ch in text]


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        completion=CompletionSettings(api_key="test-key"),
        your_name="User",
        their_name="Bot",
        starting_prompt="A friendly chat.",
        expected_response_time=5.0,
        input_poll_interval=0.0,
        database_path=tmp_path / "chatbot.db",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()
