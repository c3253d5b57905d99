"""
Command line entry point for the DeeperSeeker chat client.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
import threading
from collections.abc import Sequence

import structlog

from deeperseeker.config import Configuration
from deeperseeker.llm.client import ChatCompletionClient
from deeperseeker.llm.exceptions import ChatClientError
from deeperseeker.llm.models import ChatMessage
from deeperseeker.llm.streaming.parser import FragmentAccumulator
from deeperseeker.logging_utils import configure_logging
from deeperseeker.prompts import PromptTemplate, render_prompt
from deeperseeker.storage import API_KEY, SELECTED_MODEL_KEY, JsonFileKeyValueStore, KeyValueStore

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deeperseeker",
        description="Chat with a streaming completion API from the terminal.",
    )
    parser.add_argument("prompt", nargs="?", help="Send one prompt and exit")
    parser.add_argument("--model", help="Model id (defaults to the last one used)")
    parser.add_argument("--config", help="Path to a config.yaml")
    parser.add_argument("--set-key", metavar="KEY", help="Store an API key and exit")
    parser.add_argument(
        "--template",
        choices=[t.value for t in PromptTemplate],
        help="Wrap --artifact in a prompt template",
    )
    parser.add_argument("--artifact", help="Text file fed to --template")
    parser.add_argument("--question", help="Question for the 'question' template")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


async def resolve_model(
    store: KeyValueStore, requested: str | None, default: str
) -> str:
    """Explicit model, then the last stored one, then the configured default."""
    if requested:
        return requested
    return await store.get(SELECTED_MODEL_KEY) or default


def build_prompt(args: argparse.Namespace) -> str | None:
    if args.template:
        if not args.artifact:
            raise ValueError("--template requires --artifact")
        with open(args.artifact, encoding="utf-8") as f:
            artifact = f.read()
        return render_prompt(PromptTemplate(args.template), artifact, args.question)
    return args.prompt


async def stream_reply(
    client: ChatCompletionClient,
    history: list[ChatMessage],
    model: str,
) -> str:
    """
    Stream one reply to stdout and return its text.

    SIGINT while streaming cancels only this call; whatever arrived before
    the cancel is kept.
    """
    accumulator = FragmentAccumulator(echo=lambda text: print(text, end="", flush=True))
    task = asyncio.create_task(client.send_message(history, model, accumulator))

    loop = asyncio.get_running_loop()
    handled = sys.platform != "win32"
    if handled:
        loop.add_signal_handler(signal.SIGINT, task.cancel)
    try:
        await task
    except asyncio.CancelledError:
        # Only swallow our own cancel; an outer cancellation still propagates
        if not task.cancelled() or asyncio.current_task().cancelling():
            raise
        print("\n[cancelled]", file=sys.stderr)
    finally:
        if handled:
            loop.remove_signal_handler(signal.SIGINT)
        print()
    return accumulator.text


async def read_line(prompt: str) -> str:
    """
    Read one line of input without tying up the event loop.

    input() runs on a daemon thread rather than the default executor, so a
    Ctrl-C at the prompt cancels this await and the process can exit while
    the thread is still blocked on stdin. EOFError is re-raised here.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def settle(line: str | None, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line)

    def reader() -> None:
        try:
            line, error = input(prompt), None
        except (EOFError, OSError) as e:
            line, error = None, e
        with contextlib.suppress(RuntimeError):
            # Loop already closed after a cancelled prompt
            loop.call_soon_threadsafe(settle, line, error)

    threading.Thread(target=reader, name="deeperseeker-input", daemon=True).start()
    return await future


async def interactive(
    client: ChatCompletionClient, store: KeyValueStore, model: str
) -> None:
    history: list[ChatMessage] = []
    print(f"Chatting with {model}. Ctrl-C stops a reply; Ctrl-C or Ctrl-D at the prompt quits.")
    while True:
        try:
            line = await read_line("> ")
        except EOFError:
            print()
            return
        if not line.strip():
            continue

        history.append(ChatMessage.user(line))
        try:
            reply = await stream_reply(client, history, model)
        except ChatClientError as e:
            print(f"Error: {e}", file=sys.stderr)
            history.pop()
            continue
        if not reply:
            # Unanswered turn; the next request must not carry it
            history.pop()
            continue
        history.append(ChatMessage.assistant(reply))
        await store.set(SELECTED_MODEL_KEY, model)


async def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = Configuration(args.config)

    logging_config = config.get_logging_config()
    configure_logging(
        "DEBUG" if args.verbose else logging_config["level"],
        logging_config["json"],
    )

    store = JsonFileKeyValueStore(config.get_storage_config()["path"])
    if args.set_key:
        await store.set(API_KEY, args.set_key)
        print("API key stored.")
        return 0

    try:
        prompt = build_prompt(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    llm_config = config.get_llm_config()
    model = await resolve_model(store, args.model, llm_config["model"])

    async with ChatCompletionClient.from_configuration(config, key_store=store) as client:
        try:
            if prompt is None:
                await interactive(client, store, model)
            else:
                await stream_reply(client, [ChatMessage.user(prompt)], model)
                await store.set(SELECTED_MODEL_KEY, model)
        except ChatClientError as e:
            logger.error("Chat request failed", error=str(e), model=model)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    return 0


def cli() -> None:
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
