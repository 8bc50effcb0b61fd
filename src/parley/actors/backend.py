from __future__ import annotations

import dataclasses
import logging
import time
from typing import TYPE_CHECKING

from parley.actors.response import Clock, CompletionService, ResponseStateMachine
from parley.config import Settings
from parley.errors import PersistenceError
from parley.events import ConversationUpdated, EventChannels, Quit, RetryRequested, StatusUpdated, UserMessage
from parley.storage.sqlite_store import ConversationStore, load_conversation
from parley.types import Message, TurnToSpeak, turn_after

if TYPE_CHECKING:
    from parley.strategy import ChatStrategy

LOGGER = logging.getLogger(__name__)


class BackendActor:
    """Owns the authoritative conversation and drives the responder's turns."""

    def __init__(
        self,
        settings: Settings,
        channels: EventChannels,
        strategy: ChatStrategy,
        store: ConversationStore,
        conversation: list[Message],
        response: ResponseStateMachine,
    ) -> None:
        self.settings = settings
        self._channels = channels
        self._strategy = strategy
        self._store = store
        self.conversation = conversation
        self.response = response
        self.turn_to_speak = turn_after(conversation, settings.their_name)

    @classmethod
    def start(
        cls,
        settings: Settings,
        channels: EventChannels,
        strategy: ChatStrategy,
        completion: CompletionService,
        *,
        clock: Clock = time.monotonic,
    ) -> BackendActor:
        loaded = load_conversation(settings.database_path, settings.resume)
        backend = cls(
            settings,
            channels,
            strategy,
            loaded.store,
            loaded.conversation,
            ResponseStateMachine(settings, completion, clock=clock),
        )

        backend._publish_conversation()
        if loaded.error is not None:
            backend._publish_status(f"Warning: {loaded.error}. Starting a new conversation.")
        else:
            backend._publish_status(
                f"{settings.their_name} is ready to chat. Please type your input and press ENTER"
            )
        LOGGER.debug("backend started with %d messages, %s to speak", len(backend.conversation), backend.turn_to_speak)
        return backend

    async def tick(self) -> None:
        self._strategy.handle_events(self)
        self._strategy.advance_state_machine(self)

    def handle_events(self) -> None:
        for event in self._channels.to_backend.drain():
            if isinstance(event, UserMessage):
                self._accept_user_message(event.text)
            elif isinstance(event, RetryRequested):
                if self.turn_to_speak is TurnToSpeak.BOT:
                    self.response.retry()
            elif isinstance(event, Quit):
                # The orchestrator calls quit() itself.
                continue
            else:
                LOGGER.debug("backend ignoring %s", type(event).__name__)

    def advance_response(self) -> None:
        if self.turn_to_speak is not TurnToSpeak.BOT:
            return

        progress = self.response.advance(self.conversation)
        if progress.reply is not None:
            self._append(progress.reply)
            self.turn_to_speak = TurnToSpeak.USER
        if progress.status is not None:
            self._publish_status(progress.status)

    async def quit(self) -> None:
        self.response.abandon()
        try:
            self._store.commit(self.settings.starting_prompt, self.conversation)
            self._store.save()
        except PersistenceError:
            LOGGER.exception("failed to persist the conversation")
            raise
        finally:
            self._store.close()

    def _accept_user_message(self, content: str) -> None:
        message = Message.create(id=len(self.conversation), sender=self.settings.your_name, content=content)
        LOGGER.debug("user sent message id=%s", message.id)
        self.conversation.append(message)
        # Published right away so the user's message shows before the reply arrives.
        self._publish_conversation()
        self.turn_to_speak = TurnToSpeak.BOT

    def _append(self, message: Message) -> None:
        position = len(self.conversation)
        if message.id != position:
            message = dataclasses.replace(message, id=position)
        self.conversation.append(message)
        self._publish_conversation()

    def _publish_conversation(self) -> None:
        self._channels.to_frontend.send(ConversationUpdated(tuple(self.conversation)))

    def _publish_status(self, text: str) -> None:
        self._channels.to_frontend.send(StatusUpdated(text))
