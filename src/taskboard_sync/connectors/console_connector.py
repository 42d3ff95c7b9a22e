# src/taskboard_sync/connectors/console_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..sync.engine import BoardState
from .board_render import render_board

logger = logging.getLogger(__name__)

PROMPT = ">>> "


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class BoardPrinter:
    """
    Engine listener that redraws the board whenever the mirror or phase changes.

    Identical consecutive frames are skipped (e.g. a poll that only bumped a
    revision of a document the board does not show).
    """

    def __init__(self, *, term_width: int | None = None) -> None:
        self._term_width = term_width
        self._last_frame: str | None = None

    def __call__(self, state: BoardState) -> None:
        frame = render_board(state, term_width=self._term_width)
        if frame == self._last_frame:
            return
        self._last_frame = frame
        print(f"\n[{_ts_local()}] Board ({state.phase.value}):\n{frame}\n", flush=True)


def _deliver(fut: asyncio.Future[str], line: str | None, exc: Exception | None) -> None:
    if fut.done():
        return
    if exc is not None:
        fut.set_exception(exc)
    else:
        fut.set_result(line or "")


async def _read_line(prompt: str) -> str:
    """
    input() on a daemon thread so the event loop (and the sync pump) keeps running.

    Not an executor job: a pending input() must not block interpreter shutdown.
    """
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[str] = loop.create_future()

    def worker() -> None:
        try:
            line = input(prompt)
        except Exception as e:
            result: tuple[str | None, Exception | None] = (None, e)
        else:
            result = (line, None)
        with contextlib.suppress(RuntimeError):  # loop already closed
            loop.call_soon_threadsafe(_deliver, fut, *result)

    threading.Thread(target=worker, name="console-input", daemon=True).start()
    return await fut


async def run_console_loop(state: AppState) -> None:
    engine = state.engine
    logger.info("Console connector started (collection=%s).", engine.collection)
    _print_ts("[CONSOLE] Board commands: /add, /mv, /edit, /rm. Use /help for all. Use /exit to quit.\n")

    printer = BoardPrinter()
    engine.add_listener(printer)
    printer(engine.board())

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    try:
        while True:
            try:
                user_input = (await _read_line(PROMPT)).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            try:
                cmd_response = await command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is None:
                cmd_response = "Not a command. Use /help to list available commands."
            print(f"[{_ts_local()}] {cmd_response}", flush=True)
    finally:
        engine.remove_listener(printer)
        logger.info("Console connector finished.")
