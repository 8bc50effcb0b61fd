from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence


class TurnToSpeak(enum.Enum):
    USER = "user"
    BOT = "bot"


@dataclass(frozen=True, eq=False)
class Message:
    """One entry in a conversation.

    Ids are positions within a single conversation, so equality only makes
    sense between messages of the same conversation. Ordering follows the
    timestamp.
    """

    id: int
    sender: str
    content: str
    timestamp: datetime

    @classmethod
    def create(cls, id: int, sender: str, content: str) -> Message:
        return cls(id=id, sender=sender, content=content, timestamp=datetime.now(timezone.utc))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __lt__(self, other: Message) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return self.timestamp < other.timestamp


def turn_after(conversation: Sequence[Message], their_name: str) -> TurnToSpeak:
    if not conversation or conversation[-1].sender == their_name:
        return TurnToSpeak.USER
    return TurnToSpeak.BOT
