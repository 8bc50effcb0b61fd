from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from parley.actors.backend import BackendActor
from parley.actors.frontend import FrontendActor
from parley.actors.response import Clock, CompletionService
from parley.config import Settings, load_settings
from parley.errors import ChannelDisconnected, ConfigurationError, PersistenceError
from parley.events import EventChannels, Quit
from parley.llm.completions import CompletionClient
from parley.strategy import STRATEGIES, strategy_for
from parley.terminal.display import Display
from parley.terminal.textual_display import TerminalDisplay

LOGGER = logging.getLogger(__name__)


async def run_until_exit(
    settings: Settings,
    display: Display,
    *,
    completion: Optional[CompletionService] = None,
    clock: Clock = time.monotonic,
    channels: Optional[EventChannels] = None,
) -> None:
    if channels is None:
        channels = EventChannels()
    strategy = strategy_for(settings.mode)
    frontend = FrontendActor(settings, channels, strategy, display)
    backend = BackendActor.start(
        settings,
        channels,
        strategy,
        completion or CompletionClient(settings.completion),
        clock=clock,
    )
    LOGGER.debug("frontend and backend are ready, starting main loop")

    while True:
        await _tick_both(frontend, backend)

        try:
            for event in channels.to_app.drain():
                if isinstance(event, Quit):
                    await frontend.quit()
                    LOGGER.debug("frontend is done quitting")
                    await backend.quit()
                    LOGGER.debug("backend is done quitting")
                    LOGGER.info("Thanks for chatting!")
                    return
        except ChannelDisconnected:
            LOGGER.error("app channel closed")
            raise


async def _tick_both(frontend: FrontendActor, backend: BackendActor) -> None:
    ticks = {
        asyncio.create_task(frontend.tick(), name="parley-frontend-tick"),
        asyncio.create_task(backend.tick(), name="parley-backend-tick"),
    }

    done, pending = await asyncio.wait(ticks, return_when=asyncio.FIRST_EXCEPTION)
    for task in done:
        exc = task.exception()
        if exc is not None:
            for pending_task in pending:
                pending_task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="parley", description="Take turns chatting with a completion model")
    parser.add_argument("--config", help="YAML file with default settings")
    parser.add_argument(
        "--resume",
        action="store_true",
        default=None,
        help="resume the previous conversation instead of starting a new one",
    )
    parser.add_argument("--model", help="completion model (env OPENAI_MODEL_NAME)")
    parser.add_argument("--their-name", help="name of the bot (env THEIR_NAME)")
    parser.add_argument("--your-name", help="your name (env YOUR_NAME)")
    parser.add_argument("--prompt", help="starting prompt sent before the conversation (env STARTING_PROMPT)")
    parser.add_argument("--token-limit", type=int, help="tokens to generate per reply (env RESPONSE_TOKEN_LIMIT)")
    parser.add_argument(
        "--prompt-context-length",
        type=int,
        help="number of recent messages sent as context (env PROMPT_CONTEXT_LENGTH)",
    )
    parser.add_argument(
        "--expected-response-time",
        type=int,
        metavar="MS",
        help="wait before reporting a slow reply (env EXPECTED_RESPONSE_TIME)",
    )
    parser.add_argument(
        "--input-poll-interval",
        type=int,
        metavar="MS",
        help="longest wait for keyboard input per tick (env USER_INPUT_POLL_DURATION)",
    )
    parser.add_argument("--db-path", help="conversation database file (env DATABASE_FILE_PATH)")
    parser.add_argument("--base-url", help="completion API base URL (env OPENAI_BASE_URL)")
    parser.add_argument("--log-file", help="log destination (env LOG_FILE)")
    parser.add_argument("--log-level", help="log level (env LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="mode", metavar="MODE")
    for name, strategy in STRATEGIES.items():
        subparsers.add_parser(name, help=strategy.description)
    return parser


def configure_logging(settings: Settings) -> None:
    # The display owns the terminal, so records go to a file.
    logging.basicConfig(
        filename=settings.log_file,
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _run(settings: Settings) -> None:
    async with TerminalDisplay() as display:
        await run_until_exit(settings, display)


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides: dict[str, Any] = {k: v for k, v in vars(args).items() if k != "config"}
    try:
        settings = load_settings(overrides, config_path=args.config)
        strategy_for(settings.mode)
    except ConfigurationError as exc:
        parser.exit(2, f"parley: error: {exc}\n")

    configure_logging(settings)
    try:
        asyncio.run(_run(settings))
    except PersistenceError as exc:
        print(f"parley: conversation was not saved: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
