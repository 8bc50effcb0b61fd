from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Sequence, Union

from parley.config import Settings
from parley.errors import CompletionError
from parley.prompt.conversation_prompt import build_prompt
from parley.types import Message

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


class CompletionService(Protocol):
    def fetch_completion(
        self,
        id: int,
        prompt: str,
        responder_name: str,
        model: str,
        max_tokens: int,
    ) -> Awaitable[Message]: ...


@dataclass(frozen=True)
class ReplyDelivered:
    message: Message


@dataclass(frozen=True)
class ReplyFailed:
    error: CompletionError


ReplyOutcome = Union[ReplyDelivered, ReplyFailed]


class PendingReply:
    """Single-slot handle on one in-flight completion call.

    The outcome is observed by non-blocking `poll()` only and handed out once.
    """

    def __init__(self, task: asyncio.Task[ReplyOutcome]) -> None:
        self._task = task
        self._taken = False

    @classmethod
    def spawn(cls, call: Awaitable[Message]) -> PendingReply:
        return cls(asyncio.ensure_future(_deliver(call)))

    def poll(self) -> Optional[ReplyOutcome]:
        if self._taken or not self._task.done():
            return None
        self._taken = True
        return self._task.result()

    def abandon(self) -> None:
        if not self._task.done():
            self._task.cancel()


async def _deliver(call: Awaitable[Message]) -> ReplyOutcome:
    try:
        message = await call
    except CompletionError as exc:
        LOGGER.warning("completion call failed: %s", exc)
        return ReplyFailed(exc)
    except Exception as exc:
        LOGGER.exception("completion call raised unexpectedly")
        return ReplyFailed(CompletionError(f"unexpected error: {exc}"))
    return ReplyDelivered(message)


@dataclass(frozen=True)
class SendRequest:
    """Ready to dispatch; a held request waits for the user to retry."""

    held: bool = False


@dataclass(frozen=True)
class LoadingResponse:
    start_time: float
    pending: PendingReply


@dataclass(frozen=True)
class SlowResponse:
    start_time: float
    pending: PendingReply


ResponseRequestState = Union[SendRequest, LoadingResponse, SlowResponse]


@dataclass(frozen=True)
class Progress:
    """What one step of the machine produced for the backend to publish."""

    status: Optional[str] = None
    reply: Optional[Message] = None


class ResponseStateMachine:
    def __init__(
        self,
        settings: Settings,
        completion: CompletionService,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self._settings = settings
        self._completion = completion
        self._clock = clock
        self.state: ResponseRequestState = SendRequest()

    def advance(self, conversation: Sequence[Message]) -> Progress:
        self.state, progress = self._step(self.state, conversation)
        return progress

    def abandon(self) -> None:
        if isinstance(self.state, (LoadingResponse, SlowResponse)):
            LOGGER.info("abandoning in-flight response from %s", self._settings.their_name)
            self.state.pending.abandon()
        self.state = SendRequest()

    def retry(self) -> bool:
        if not (isinstance(self.state, SendRequest) and self.state.held):
            LOGGER.debug("retry ignored in state %s", type(self.state).__name__)
            return False
        LOGGER.info("user asked %s to try again", self._settings.their_name)
        self.state = SendRequest()
        return True

    def _step(
        self, state: ResponseRequestState, conversation: Sequence[Message]
    ) -> tuple[ResponseRequestState, Progress]:
        if isinstance(state, SendRequest):
            if state.held:
                return state, Progress()
            return self._send_request(conversation), Progress()

        if isinstance(state, LoadingResponse):
            elapsed = self._clock() - state.start_time
            if elapsed > self._settings.expected_response_time:
                LOGGER.info(
                    "%s is taking longer than %.1fs to respond",
                    self._settings.their_name,
                    self._settings.expected_response_time,
                )
                return SlowResponse(state.start_time, state.pending), Progress(status=self._slow_status(elapsed))
            return self._poll(state, waiting=f"Waiting for {self._settings.their_name}'s response")

        if isinstance(state, SlowResponse):
            return self._poll(state, waiting=self._slow_status(self._clock() - state.start_time))

        raise TypeError(f"unknown response state: {state!r}")

    def _send_request(self, conversation: Sequence[Message]) -> LoadingResponse:
        prompt = build_prompt(
            self._settings.starting_prompt,
            conversation,
            self._settings.prompt_context_length,
        )
        LOGGER.debug("requesting a response from %s", self._settings.their_name)
        call = self._completion.fetch_completion(
            len(conversation),
            prompt,
            self._settings.their_name,
            self._settings.model,
            self._settings.token_limit,
        )
        return LoadingResponse(start_time=self._clock(), pending=PendingReply.spawn(call))

    def _poll(
        self, state: Union[LoadingResponse, SlowResponse], *, waiting: str
    ) -> tuple[ResponseRequestState, Progress]:
        outcome = state.pending.poll()
        if outcome is None:
            return state, Progress(status=waiting)

        their_name = self._settings.their_name
        if isinstance(outcome, ReplyFailed):
            return SendRequest(held=True), Progress(
                status=f"{their_name} failed to respond: {outcome.error}. Press CTRL+R to retry"
            )

        elapsed = self._clock() - state.start_time
        verb = "slowly responded" if isinstance(state, SlowResponse) else "responded"
        LOGGER.debug("received response from %s after %.2fs", their_name, elapsed)
        return SendRequest(), Progress(status=f"{their_name} {verb} in {elapsed:.2f}s", reply=outcome.message)

    def _slow_status(self, elapsed: float) -> str:
        return f"Waiting for {self._settings.their_name}'s response, it's taking a while ({int(elapsed)}s)"
