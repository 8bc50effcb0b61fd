from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from parley.config import CompletionSettings
from parley.errors import CompletionError
from parley.types import Message

LOGGER = logging.getLogger(__name__)


class CompletionClient:
    """Text completion client for OpenAI-compatible `/completions` endpoints."""

    def __init__(
        self,
        config: CompletionSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    async def fetch_completion(
        self,
        id: int,
        prompt: str,
        responder_name: str,
        model: str,
        max_tokens: int,
    ) -> Message:
        if not prompt:
            raise CompletionError("prompt cannot be empty")

        payload = {
            "model": model,
            "prompt": prompt,
            "max_tokens": max_tokens,
            "temperature": self._config.temperature,
        }

        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        if self._config.organization_id:
            headers["OpenAI-Organization"] = self._config.organization_id

        LOGGER.debug("requesting completion id=%s model=%s prompt_chars=%d", id, model, len(prompt))
        async with httpx.AsyncClient(timeout=self._config.timeout_seconds, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self._config.base_url}/completions",
                    headers=headers,
                    json=payload,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise CompletionError(
                    f"completion request failed with status {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                raise CompletionError(f"completion request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise CompletionError("completion response was not valid JSON") from exc

        return Message.create(id=id, sender=responder_name, content=_extract_text(body))


def _extract_text(body: Any) -> str:
    choices = body.get("choices") if isinstance(body, dict) else None
    if not choices or not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise CompletionError("completion response missing choices")

    choice = choices[0]
    text = choice.get("text")
    if isinstance(text, str):
        return text.strip()

    message = choice.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        chunks = [
            part["text"] for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        if chunks:
            return "".join(chunks).strip()

    raise CompletionError("completion response missing text")
