# src/taskgate/cli/console.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..core.state import AppState
from .commands import close_view, open_route
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


async def ask_yes_no(question: str) -> bool:
    answer = await asyncio.to_thread(input, f"{question} [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _prompt(state: AppState) -> str:
    return f"{state.navigator.route} > "


async def follow_navigation(state: AppState) -> str | None:
    """
    Keep the mounted view in step with the navigator.

    A redirect issued by a gate (e.g. sign-out from a session listener) means
    the view lost access: tear it down, then open whatever lives at the new
    route.
    """
    view = state.view
    if view is None or state.navigator.route == view.route:
        return None
    route = state.navigator.route
    logger.info("Left %s for %s", view.route, route)
    await close_view(state)
    if route == state.settings.login_route:
        return f"Session ended. Now at {route}. Use /login."
    return await open_route(state, route)


async def run_console(state: AppState) -> None:
    logger.info("Console started (backend=%s).", getattr(state.settings, "backend", "?"))
    _print_ts("[CONSOLE] Use /help for commands, /login to sign in, /exit to quit.\n")

    state.confirm = ask_yes_no
    state.navigator.redirect(state.settings.login_route)

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = (await asyncio.to_thread(input, _prompt(state))).strip()
            _rewrite_prev_line(f"[{_ts_local()}] {_prompt(state)}{user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        note = await follow_navigation(state)
        if note:
            emit(note)

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            emit("Commands start with '/'. Use /help.")
            continue

        try:
            reply = await command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            emit(reply)

        note = await follow_navigation(state)
        if note:
            emit(note)

    await close_view(state)
    logger.info("Console finished.")
