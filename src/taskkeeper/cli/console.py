# src/taskkeeper/cli/console.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..core.state import AppState
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _flush_notices(state: AppState) -> None:
    for notice in state.drain_notices():
        _print_ts(f"[SYNC] {notice}")


async def run_console_loop(state: AppState) -> None:
    """
    Interactive REPL. input() runs in a worker thread so background sweeps
    keep running on the event loop while the prompt waits.
    """
    logger.info("Console started (mode=%s).", state.backend.mode.value)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g. migration plans)
        _print_ts(text)

    while True:
        _flush_notices(state)
        try:
            user_input = (await asyncio.to_thread(input, "> ")).strip()
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

        if not user_input.startswith("/"):
            _print_ts("Commands start with '/'. Try /add <title> or /help.")
            continue

        try:
            reply = await command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        _flush_notices(state)
        if reply is not None:
            _print_ts(reply)

    logger.info("Console finished.")
