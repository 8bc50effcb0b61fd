from __future__ import annotations

from dataclasses import dataclass
from email.utils import format_datetime
from typing import Optional, Protocol, Sequence

from rich.text import Text

from parley.types import Message

NEW_CONVERSATION_HINT = "This is a new conversation. Type your message and press Enter to start chatting."

QUIT_KEY = "escape"
SUBMIT_KEY = "enter"
BACKSPACE_KEY = "backspace"
RETRY_KEY = "ctrl+r"


@dataclass(frozen=True)
class KeyInput:
    key: str
    character: Optional[str] = None


@dataclass(frozen=True)
class DisplayView:
    conversation: tuple[Message, ...]
    input_buffer: str
    status: str


class Display(Protocol):
    async def poll_input(self, timeout: float) -> list[KeyInput]:
        """Wait up to `timeout` seconds for input and return whatever arrived."""

    def draw(self, view: DisplayView) -> None: ...

    async def close(self) -> None: ...


def render_conversation(conversation: Sequence[Message]) -> Text:
    if not conversation:
        return Text(NEW_CONVERSATION_HINT, style="italic grey50")

    text = Text()
    for message in conversation:
        text.append(message.sender, style="bold")
        text.append(": ")
        text.append(format_datetime(message.timestamp), style="italic grey50")
        text.append("\n")
        text.append(message.content)
        text.append("\n\n")
    return text


def view_fingerprint(view: DisplayView) -> tuple:
    """Everything a redraw shows; `Message` equality alone only looks at ids."""
    messages = tuple((m.id, m.sender, m.content, m.timestamp) for m in view.conversation)
    return messages, view.input_buffer, view.status
