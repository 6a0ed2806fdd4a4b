# src/taskgate/core/state.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .models import TaskDraft
from .ports import RemoteStore, SessionProvider

logger = logging.getLogger(__name__)

ConfirmPrompt = Callable[[str], Awaitable[bool]]


class RouteNavigator:
    """Navigator port for non-browser front ends: remembers where we are."""

    def __init__(self, route: str = "/") -> None:
        self.route = route
        self.history: list[str] = [route]

    def redirect(self, route: str) -> None:
        if route == self.route:
            return
        logger.info("Redirect %s -> %s", self.route, route)
        self.route = route
        self.history.append(route)


async def _decline(_question: str) -> bool:
    return False


@dataclass
class AppState:
    """
    Everything a front end needs, wired once in the composition root.

    There is no global session state: views get their identity from the
    session provider through an IdentityContext of their own.
    """

    settings: Any
    store: RemoteStore
    sessions: SessionProvider
    navigator: RouteNavigator = field(default_factory=RouteNavigator)

    # How to ask the user a yes/no question (deletes need an explicit affirm).
    confirm: ConfirmPrompt = _decline

    # Currently mounted view (cli.views.TaskView), if any.
    view: Any = None

    # Last create-form state; kept after a failed create so /retry can resubmit it.
    draft: TaskDraft | None = None
