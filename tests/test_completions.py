from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from parley.config import CompletionSettings
from parley.errors import CompletionError
from parley.llm.completions import CompletionClient


def _client(handler: Callable[[httpx.Request], httpx.Response], **overrides) -> CompletionClient:
    config = CompletionSettings(
        api_key="sk-test",
        base_url=overrides.pop("base_url", "https://llm.test/v1"),
        **overrides,
    )
    return CompletionClient(config, transport=httpx.MockTransport(handler))


async def _fetch(client: CompletionClient, prompt: str = "User:\nHello bot.\n\n"):
    return await client.fetch_completion(4, prompt, "Bot", "test-model", 32)


@pytest.mark.asyncio
async def test_fetch_completion_posts_prompt_and_builds_message() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"text": "  Hello, human.\n"}]})

    message = await _fetch(_client(handler, organization_id="org-42"))

    assert message.id == 4
    assert message.sender == "Bot"
    assert message.content == "Hello, human."

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://llm.test/v1/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["OpenAI-Organization"] == "org-42"
    assert json.loads(request.content) == {
        "model": "test-model",
        "prompt": "User:\nHello bot.\n\n",
        "max_tokens": 32,
        "temperature": 0.0,
    }


@pytest.mark.asyncio
async def test_organization_header_is_optional() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"text": "ok"}]})

    await _fetch(_client(handler))

    assert "OpenAI-Organization" not in seen[0].headers


@pytest.mark.asyncio
async def test_chat_style_choice_content_is_accepted() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"choices": [{"message": {"content": [{"type": "text", "text": "Hi "}, {"text": "there"}]}}]},
        )

    message = await _fetch(_client(handler))

    assert message.content == "Hi there"


@pytest.mark.asyncio
async def test_error_status_raises_completion_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    with pytest.raises(CompletionError, match="status 401"):
        await _fetch(_client(handler))


@pytest.mark.asyncio
async def test_transport_error_raises_completion_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CompletionError, match="connection refused"):
        await _fetch(_client(handler))


@pytest.mark.asyncio
async def test_malformed_bodies_raise_completion_error() -> None:
    def no_choices(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    def no_text(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"finish_reason": "length"}]})

    with pytest.raises(CompletionError, match="missing choices"):
        await _fetch(_client(no_choices))
    with pytest.raises(CompletionError, match="not valid JSON"):
        await _fetch(_client(not_json))
    with pytest.raises(CompletionError, match="missing text"):
        await _fetch(_client(no_text))


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected_before_sending() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(CompletionError, match="prompt cannot be empty"):
        await _fetch(_client(handler), prompt="")


@pytest.mark.asyncio
async def test_oddly_shaped_messages_raise_completion_error() -> None:
    def message_is_text(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": "hi"}]})

    def parts_without_text(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": [{"text": 7}, "loose"]}}]})

    with pytest.raises(CompletionError, match="missing text"):
        await _fetch(_client(message_is_text))
    with pytest.raises(CompletionError, match="missing text"):
        await _fetch(_client(parts_without_text))
