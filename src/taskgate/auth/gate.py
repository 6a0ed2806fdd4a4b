# src/taskgate/auth/gate.py

"""
Authorization gate.

A reusable guard for protected views:
- while checking, only a loading placeholder is rendered,
- no session -> redirect to the login route,
- signed in but wrong/missing role (or profile not provisioned) -> redirect
  to a safe fallback route, never to login,
- otherwise the view renders.

The gate also listens to session changes for as long as its view is mounted,
so a sign-out elsewhere (another tab, token expiry) revokes access at once.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TypeVar

from ..core.errors import FetchError, NotFoundError, ProfileMissingError
from ..core.models import Session
from ..core.ports import Navigator, SessionProvider, Unsubscribe
from .identity import IdentityResolver
from .roles import RoleDirectory

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOADING_PLACEHOLDER = "Checking session..."


class GateState(str, Enum):
    CHECKING = "checking"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    AUTHORIZED = "authorized"


class AuthorizationGate:
    def __init__(
            self,
            resolver: IdentityResolver,
            roles: RoleDirectory,
            sessions: SessionProvider,
            navigator: Navigator,
            *,
            required_role: str | None = None,
            login_route: str = "/login",
            fallback_route: str = "/dashboard",
    ) -> None:
        self._resolver = resolver
        self._roles = roles
        self._sessions = sessions
        self._navigator = navigator
        self.required_role = required_role
        self.login_route = login_route
        self.fallback_route = fallback_route

        self.state = GateState.CHECKING
        self._mounted = False
        self._unsubscribe: Unsubscribe | None = None
        self._pending: set[asyncio.Task[GateState]] = set()
        # Bumped on every session change and on unmount; a check settles only
        # if no newer event arrived while it was waiting on the store.
        self._generation = 0

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> GateState:
        """Evaluate once and start listening for session changes."""
        self._mounted = True
        self._unsubscribe = self._sessions.on_session_change(self._on_session_change)
        await self.evaluate()
        # A session change during the first check decides instead.
        await self.wait_idle()
        return self.state

    def unmount(self) -> None:
        """Release the session subscription; no redirect is issued after this."""
        self._mounted = False
        self._generation += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    async def evaluate(self) -> GateState:
        generation = self._generation
        self.state = GateState.CHECKING
        decided = await self._decide()
        if not self._mounted or generation != self._generation:
            # Unmounted or superseded while waiting on the store.
            return self.state
        self._settle(decided)
        return decided

    async def _decide(self) -> GateState:
        try:
            identity = await self._resolver.current_identity()
        except ProfileMissingError as e:
            logger.info("Gate: %s -> unauthorized", e)
            return GateState.UNAUTHORIZED
        except FetchError as e:
            logger.warning("Gate: identity check failed (%s) -> unauthorized", e)
            return GateState.UNAUTHORIZED

        if identity is None:
            return GateState.UNAUTHENTICATED

        if self.required_role is None:
            return GateState.AUTHORIZED

        if identity.role_id is None:
            logger.info("Gate: user=%s has no role -> unauthorized", identity.user_id)
            return GateState.UNAUTHORIZED

        try:
            role_name = await self._roles.resolve_role_name(identity.role_id)
        except (NotFoundError, FetchError) as e:
            logger.warning("Gate: role lookup failed for user=%s (%s)", identity.user_id, e)
            return GateState.UNAUTHORIZED

        if role_name != self.required_role:
            logger.info(
                "Gate: user=%s role=%s, required=%s -> unauthorized",
                identity.user_id,
                role_name,
                self.required_role,
            )
            return GateState.UNAUTHORIZED

        return GateState.AUTHORIZED

    def _settle(self, state: GateState) -> None:
        self.state = state
        if state == GateState.UNAUTHENTICATED:
            self._navigator.redirect(self.login_route)
        elif state == GateState.UNAUTHORIZED:
            self._navigator.redirect(self.fallback_route)

    def _on_session_change(self, session: Session | None) -> None:
        if not self._mounted:
            return
        self._generation += 1
        if session is None:
            # Sign-out needs no store round trip and wins over stale checks.
            for task in list(self._pending):
                task.cancel()
            self._settle(GateState.UNAUTHENTICATED)
            return
        task = asyncio.get_running_loop().create_task(self.evaluate())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_idle(self) -> None:
        """Wait for re-evaluations triggered by session changes."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def render(self, content: T) -> T | str:
        if self.state == GateState.AUTHORIZED:
            return content
        return LOADING_PLACEHOLDER
