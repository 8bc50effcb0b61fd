from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING

from parley.errors import ConfigurationError
from parley.terminal.display import BACKSPACE_KEY, QUIT_KEY, RETRY_KEY, SUBMIT_KEY

if TYPE_CHECKING:
    from parley.actors.backend import BackendActor
    from parley.actors.frontend import FrontendActor

LOGGER = logging.getLogger(__name__)


class ChatStrategy(abc.ABC):
    """Per-mode behaviour, chosen once when the session starts."""

    name: str
    description: str

    @abc.abstractmethod
    async def handle_input(self, frontend: FrontendActor) -> None: ...

    @abc.abstractmethod
    def redraw(self, frontend: FrontendActor) -> None: ...

    @abc.abstractmethod
    def handle_events(self, backend: BackendActor) -> None: ...

    @abc.abstractmethod
    def advance_state_machine(self, backend: BackendActor) -> None: ...


class TextStrategy(ChatStrategy):
    name = "text"
    description = "Chat by typing messages and read the replies in the terminal."

    async def handle_input(self, frontend: FrontendActor) -> None:
        keys = await frontend.display.poll_input(frontend.settings.input_poll_interval)
        for key in keys:
            if key.key == QUIT_KEY:
                frontend.request_quit()
            elif key.key == SUBMIT_KEY:
                frontend.submit()
            elif key.key == RETRY_KEY:
                frontend.request_retry()
            elif key.key == BACKSPACE_KEY:
                frontend.input_buffer = frontend.input_buffer[:-1]
            elif key.character:
                frontend.input_buffer += key.character
            else:
                LOGGER.debug("ignoring key %s", key.key)

    def redraw(self, frontend: FrontendActor) -> None:
        frontend.display.draw(frontend.view())

    def handle_events(self, backend: BackendActor) -> None:
        backend.handle_events()

    def advance_state_machine(self, backend: BackendActor) -> None:
        backend.advance_response()


STRATEGIES: dict[str, type[ChatStrategy]] = {
    TextStrategy.name: TextStrategy,
}


def strategy_for(mode: str) -> ChatStrategy:
    try:
        return STRATEGIES[mode]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown mode {mode!r}; choose one of: {', '.join(sorted(STRATEGIES))}"
        ) from None
