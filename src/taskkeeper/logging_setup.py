# src/taskkeeper/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "taskkeeper.log"
LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Minimum level shown on the terminal per logger-name prefix; first match wins.
CONSOLE_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("taskkeeper.tasks.task_scheduler", logging.WARNING),
    ("taskkeeper.", logging.NOTSET),
    ("httpx", logging.WARNING),
    ("httpcore", logging.WARNING),
    ("py.warnings", logging.ERROR),
)


class _TerminalFilter(logging.Filter):
    """
    Keeps the REPL readable while the sweep runs in the background.

    Sweep chatter and HTTP request lines only reach the terminal when something
    went wrong; loggers not listed in CONSOLE_THRESHOLDS need ERROR. The log
    file still gets everything.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, threshold in CONSOLE_THRESHOLDS:
            if record.name.startswith(prefix):
                return record.levelno >= threshold
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskkeeper",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route all records to stderr (filtered) and to `<log_dir>/taskkeeper.log`.

    Replaces whatever handlers the root logger had, so calling it again does
    not duplicate output. Returns the log file path.
    """
    log_file = Path(log_dir) / LOG_FILE_NAME
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    terminal = logging.StreamHandler(sys.stderr)
    terminal.setLevel(console_level)
    terminal.setFormatter(formatter)
    terminal.addFilter(_TerminalFilter())

    logfile = logging.FileHandler(str(log_file), encoding="utf-8")
    logfile.setLevel(file_level)
    logfile.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG)
    root.addHandler(terminal)
    root.addHandler(logfile)

    # warnings.warn(...) shows up as the 'py.warnings' logger
    logging.captureWarnings(True)
    return log_file
