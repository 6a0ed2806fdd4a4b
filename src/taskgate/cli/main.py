# src/taskgate/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the console until /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..config import get_settings
from ..logging_setup import setup_logging
from .bootstrap import create_initial_state, shutdown
from .console import run_console

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)
    try:
        await run_console(state)
    finally:
        await shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (backend=%s, log=%s)", settings.app_name, settings.backend, log_file)
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
