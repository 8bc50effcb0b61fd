from __future__ import annotations

import pytest

from conftest import FakeDisplay, typed
from parley.actors.frontend import LOADING_STATUS, FrontendActor
from parley.config import Settings
from parley.events import ConversationUpdated, EventChannels, Quit, RetryRequested, StatusUpdated, UserMessage
from parley.strategy import TextStrategy
from parley.terminal.display import KeyInput
from parley.types import Message, TurnToSpeak


def _frontend(settings: Settings, display: FakeDisplay) -> tuple[FrontendActor, EventChannels]:
    channels = EventChannels()
    return FrontendActor(settings, channels, TextStrategy(), display), channels


@pytest.mark.asyncio
async def test_typing_and_backspace_edit_the_input_buffer(settings: Settings) -> None:
    display = FakeDisplay([typed("hix") + [KeyInput(key="backspace")], [KeyInput(key="f1")]])
    frontend, _ = _frontend(settings, display)

    await frontend.tick()
    await frontend.tick()

    assert frontend.input_buffer == "hi"
    assert display.views[-1].input_buffer == "hi"


@pytest.mark.asyncio
async def test_enter_sends_message_and_clears_buffer(settings: Settings) -> None:
    display = FakeDisplay([typed("Hello bot.") + [KeyInput(key="enter")]])
    frontend, channels = _frontend(settings, display)

    await frontend.tick()

    assert list(channels.to_backend.drain()) == [UserMessage("Hello bot.")]
    assert frontend.input_buffer == ""


@pytest.mark.asyncio
async def test_enter_with_empty_buffer_sends_nothing(settings: Settings) -> None:
    display = FakeDisplay([[KeyInput(key="enter")]])
    frontend, channels = _frontend(settings, display)

    await frontend.tick()

    assert channels.to_backend.try_receive() is None


@pytest.mark.asyncio
async def test_enter_out_of_turn_keeps_the_draft(settings: Settings) -> None:
    display = FakeDisplay([typed("wait") + [KeyInput(key="enter")]])
    frontend, channels = _frontend(settings, display)
    frontend.turn_to_speak = TurnToSpeak.BOT

    await frontend.tick()

    assert channels.to_backend.try_receive() is None
    assert frontend.input_buffer == "wait"


@pytest.mark.asyncio
async def test_escape_asks_the_app_to_quit(settings: Settings) -> None:
    display = FakeDisplay([[KeyInput(key="escape")]])
    frontend, channels = _frontend(settings, display)

    await frontend.tick()

    assert list(channels.to_app.drain()) == [Quit()]
    assert channels.to_backend.try_receive() is None


@pytest.mark.asyncio
async def test_events_update_conversation_turn_and_status(settings: Settings) -> None:
    display = FakeDisplay()
    frontend, channels = _frontend(settings, display)
    message = Message.create(id=0, sender="User", content="Hello bot.")

    channels.to_frontend.send(ConversationUpdated((message,)))
    channels.to_frontend.send(StatusUpdated("Waiting for Bot's response"))
    await frontend.tick()

    assert frontend.conversation == [message]
    assert frontend.turn_to_speak is TurnToSpeak.BOT
    assert frontend.status == "Waiting for Bot's response"
    assert display.views[-1].conversation == (message,)

    reply = Message.create(id=1, sender="Bot", content="Hi.")
    channels.to_frontend.send(ConversationUpdated((message, reply)))
    await frontend.tick()

    assert frontend.turn_to_speak is TurnToSpeak.USER


@pytest.mark.asyncio
async def test_redraws_on_every_tick(settings: Settings) -> None:
    display = FakeDisplay()
    frontend, _ = _frontend(settings, display)

    for _ in range(3):
        await frontend.tick()

    assert len(display.views) == 3
    assert all(view.status == LOADING_STATUS for view in display.views)


@pytest.mark.asyncio
async def test_quit_closes_the_display(settings: Settings) -> None:
    display = FakeDisplay()
    frontend, _ = _frontend(settings, display)

    await frontend.quit()

    assert display.closed


@pytest.mark.asyncio
async def test_retry_key_is_sent_only_while_a_reply_is_owed(settings: Settings) -> None:
    display = FakeDisplay([[KeyInput(key="ctrl+r")], [KeyInput(key="ctrl+r")]])
    frontend, channels = _frontend(settings, display)

    await frontend.tick()
    assert channels.to_backend.try_receive() is None

    frontend.turn_to_speak = TurnToSpeak.BOT
    await frontend.tick()
    assert list(channels.to_backend.drain()) == [RetryRequested()]
