from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from parley.config import Settings
from parley.events import ConversationUpdated, EventChannels, Quit, RetryRequested, StatusUpdated, UserMessage
from parley.terminal.display import Display, DisplayView
from parley.types import Message, TurnToSpeak, turn_after

if TYPE_CHECKING:
    from parley.strategy import ChatStrategy

LOGGER = logging.getLogger(__name__)

LOADING_STATUS = "loading the chatbot..."


class FrontendActor:
    """Mirrors the conversation for display and turns user input into events."""

    def __init__(
        self,
        settings: Settings,
        channels: EventChannels,
        strategy: ChatStrategy,
        display: Display,
    ) -> None:
        self.settings = settings
        self.display = display
        self._channels = channels
        self._strategy = strategy
        self.conversation: list[Message] = []
        self.turn_to_speak = TurnToSpeak.USER
        self.status = LOADING_STATUS
        self.input_buffer = ""

    async def tick(self) -> None:
        await self._strategy.handle_input(self)
        self.handle_events()
        # Redraw every tick, even without new events.
        self._strategy.redraw(self)

    def handle_events(self) -> None:
        for event in self._channels.to_frontend.drain():
            if isinstance(event, ConversationUpdated):
                self.conversation = list(event.messages)
                self.turn_to_speak = turn_after(self.conversation, self.settings.their_name)
                LOGGER.debug("conversation updated, %s to speak", self.turn_to_speak)
            elif isinstance(event, StatusUpdated):
                self.status = event.text
            elif isinstance(event, Quit):
                # The orchestrator calls quit() itself.
                continue
            else:
                LOGGER.debug("frontend ignoring %s", type(event).__name__)

    def request_quit(self) -> None:
        LOGGER.debug("user asked to quit")
        self._channels.to_app.send(Quit())

    def request_retry(self) -> None:
        if self.turn_to_speak is not TurnToSpeak.BOT:
            LOGGER.debug("user asked for a retry but no reply is owed")
            return
        self._channels.to_backend.send(RetryRequested())

    def submit(self) -> bool:
        if not self.input_buffer:
            LOGGER.debug("user attempted to send message but it's empty")
            return False
        if self.turn_to_speak is not TurnToSpeak.USER:
            LOGGER.debug("user attempted to send message but it's not their turn")
            return False

        self._channels.to_backend.send(UserMessage(self.input_buffer))
        self.input_buffer = ""
        return True

    def view(self) -> DisplayView:
        return DisplayView(
            conversation=tuple(self.conversation),
            input_buffer=self.input_buffer,
            status=self.status,
        )

    async def quit(self) -> None:
        LOGGER.debug("tearing down the display")
        await self.display.close()
