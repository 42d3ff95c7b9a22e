# src/taskboard_sync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the sync engine and runs the
console board until /exit, EOF or a signal.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    state.engine.stop()
    try:
        await state.engine.wait_stopped()
    except Exception:
        logger.debug("Sync pump ended with an error.", exc_info=True)

    try:
        await state.store.close()
    except Exception:
        logger.exception("Failed to close the store.")


async def run(state: AppState) -> None:
    loop = asyncio.get_running_loop()
    stop_main = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows event loops).
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, _handle_signal, signum)

    state.engine.start()
    console = asyncio.create_task(run_console_loop(state), name="console")
    stopper = asyncio.create_task(stop_main.wait(), name="signal-wait")
    try:
        await asyncio.wait({console, stopper}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (console, stopper):
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stopper
        if console.done() and not console.cancelled() and console.exception() is not None:
            logger.error("Console loop crashed.", exc_info=console.exception())
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/taskboard")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "taskboard"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
