from __future__ import annotations

from typing import Sequence

from parley.types import Message


def context_window(messages: Sequence[Message], context_length: int) -> Sequence[Message]:
    if len(messages) <= context_length:
        return messages
    return messages[len(messages) - context_length :]


def build_prompt(starting_prompt: str, messages: Sequence[Message], context_length: int) -> str:
    sections: list[str] = []
    if starting_prompt:
        sections.append(f"{starting_prompt}\n\n")

    for message in context_window(messages, context_length):
        sections.append(f"{message.sender}:\n{message.content}\n\n")

    return "".join(sections)
