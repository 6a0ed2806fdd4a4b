# src/taskgate/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

APP_LOGGER = "taskgate"

# Transport-level modules: their INFO/DEBUG lines go to the file only.
QUIET_APP_LOGGERS = ("taskgate.store.", "taskgate.auth.sessions")

# Third-party loggers lowered to WARNING everywhere (file included).
NOISY_LIBRARIES = ("httpx", "httpcore")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for the interactive prompt.

    taskgate records pass, except store/session transport chatter below
    WARNING. Everything else (third-party, py.warnings) needs ERROR+.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
            if name.startswith(QUIET_APP_LOGGERS):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskgate",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    noisy: Iterable[str] = NOISY_LIBRARIES,
) -> Path:
    """
    Install a filtered stderr handler and a full file log (<log_dir>/taskgate.log).

    Replaces any handlers already on the root logger, so call it once at
    startup. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "taskgate.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)

    root.addHandler(console)
    root.addHandler(file_handler)

    for name in noisy:
        logging.getLogger(name).setLevel(logging.WARNING)

    # warnings.warn(...) -> 'py.warnings' logger
    logging.captureWarnings(True)
    return log_file
