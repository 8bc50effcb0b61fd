from __future__ import annotations

import asyncio
import logging
from typing import Optional

from textual import events
from textual.app import App, ComposeResult
from textual.containers import VerticalScroll
from textual.widgets import Static

from parley.terminal.display import QUIT_KEY, DisplayView, KeyInput, render_conversation, view_fingerprint

LOGGER = logging.getLogger(__name__)


class ChatApp(App[None]):
    CSS = """
    #conversation {
        height: 70%;
        border-bottom: solid grey;
    }
    #input {
        height: 20%;
        border-bottom: solid grey;
    }
    #status {
        height: 10%;
        color: grey;
        text-align: right;
    }
    """

    def __init__(self, keys: asyncio.Queue[KeyInput]) -> None:
        super().__init__()
        self._keys = keys
        self.ready_event = asyncio.Event()

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="conversation"):
            yield Static(id="messages")
        yield Static(id="input")
        yield Static(id="status")

    def on_mount(self) -> None:
        self.ready_event.set()

    def on_key(self, event: events.Key) -> None:
        event.stop()
        character = event.character if event.is_printable else None
        self._keys.put_nowait(KeyInput(key=event.key, character=character))

    async def action_quit(self) -> None:
        # Shutdown runs through the frontend's quit, which closes the app.
        self._keys.put_nowait(KeyInput(key=QUIT_KEY))

    def show(self, view: DisplayView) -> None:
        self.query_one("#messages", Static).update(render_conversation(view.conversation))
        self.query_one("#input", Static).update(f"{view.input_buffer}▏")
        self.query_one("#status", Static).update(view.status)
        self.query_one("#conversation", VerticalScroll).scroll_end(animate=False)


class TerminalDisplay:
    """Display backed by a textual app running on the current event loop."""

    def __init__(self) -> None:
        self._keys: asyncio.Queue[KeyInput] = asyncio.Queue()
        self._app = ChatApp(self._keys)
        self._task: Optional[asyncio.Task[None]] = None
        self._last_drawn: Optional[tuple] = None

    async def open(self) -> None:
        self._task = asyncio.create_task(self._app.run_async(), name="parley-display")
        ready = asyncio.create_task(self._app.ready_event.wait())
        done, _ = await asyncio.wait({self._task, ready}, return_when=asyncio.FIRST_COMPLETED)
        if self._task in done:
            ready.cancel()
            self._task.result()
            raise RuntimeError("terminal display exited during startup")
        LOGGER.debug("terminal display is ready")

    async def poll_input(self, timeout: float) -> list[KeyInput]:
        try:
            keys = [await asyncio.wait_for(self._keys.get(), timeout)]
        except asyncio.TimeoutError:
            return []

        while True:
            try:
                keys.append(self._keys.get_nowait())
            except asyncio.QueueEmpty:
                return keys

    def draw(self, view: DisplayView) -> None:
        if self._task is None or self._task.done():
            return
        # Textual tracks resizes on its own; only changed content needs pushing.
        fingerprint = view_fingerprint(view)
        if fingerprint == self._last_drawn:
            return
        self._last_drawn = fingerprint
        self._app.show(view)

    async def close(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            self._app.exit()
        await task
        LOGGER.debug("terminal display closed")

    async def __aenter__(self) -> TerminalDisplay:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
