# src/taskkeeper/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs in one asyncio loop:
- the sweep scheduler in the background,
- the console REPL in the foreground (optional).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state, shutdown_session, start_session
from ..cli.console import run_console_loop
from ..config import Settings, get_settings
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def run_app(settings: Settings) -> None:
    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    scheduler_task: asyncio.Task[None] | None = None

    try:
        await start_session(state)

        if state.scheduler is not None:
            scheduler_task = asyncio.create_task(state.scheduler.run(), name="taskkeeper-scheduler")

        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Running the sweep scheduler only. Press Ctrl+C to stop.")
            await asyncio.Event().wait()
    finally:
        if scheduler_task is not None:
            scheduler_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await scheduler_task
        await shutdown_session(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(run_app(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
