# src/taskgate/auth/identity.py

from __future__ import annotations

import asyncio
import logging

from ..core.errors import FetchError, NotFoundError, ProfileMissingError, StoreError, TaskGateError
from ..core.models import Identity, Profile, Session
from ..core.ports import RemoteStore, SessionProvider, Unsubscribe
from .roles import RoleDirectory

logger = logging.getLogger(__name__)

PROFILES = "profiles"


async def fetch_profile(store: RemoteStore, user_id: str) -> Profile | None:
    try:
        rows = await store.select(PROFILES, {"id": user_id})
    except StoreError as e:
        raise FetchError(f"Profile lookup failed: {e}") from e
    return Profile.from_record(rows[0]) if rows else None


class IdentityResolver:
    """Single source of truth for "who is asking"."""

    def __init__(self, sessions: SessionProvider, store: RemoteStore) -> None:
        self._sessions = sessions
        self._store = store

    async def current_session(self) -> Session | None:
        try:
            return await self._sessions.get_session()
        except StoreError as e:
            raise FetchError(f"Session lookup failed: {e}") from e

    async def current_identity(self) -> Identity | None:
        """
        Resolve the active session into (user_id, email, role_id).

        Returns None when nobody is signed in. Raises ProfileMissingError when
        a session exists but its profile row does not: that user is validly
        signed in, just not provisioned.
        """
        session = await self.current_session()
        if session is None:
            return None

        profile = await fetch_profile(self._store, session.user_id)
        if profile is None:
            raise ProfileMissingError(session.user_id)

        return Identity(
            user_id=session.user_id,
            email=profile.email if profile.email is not None else session.email,
            role_id=profile.role_id,
        )


class IdentityContext:
    """
    Explicit, passed-down identity for one view.

    Lifecycle: open() on mount, refreshed on every session change,
    close() on teardown. Nothing here is process-global.
    """

    def __init__(self, resolver: IdentityResolver, sessions: SessionProvider, roles: RoleDirectory) -> None:
        self._resolver = resolver
        self._sessions = sessions
        self._roles = roles
        self._unsubscribe: Unsubscribe | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._generation = 0

        self.identity: Identity | None = None
        self.role_name: str | None = None
        self.error: TaskGateError | None = None

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    async def open(self) -> None:
        await self.refresh()
        if self._unsubscribe is None:
            self._unsubscribe = self._sessions.on_session_change(self._on_session_change)

    async def refresh(self) -> None:
        self._generation += 1
        generation = self._generation
        try:
            identity = await self._resolver.current_identity()
            role_name = None
            if identity is not None and identity.role_id is not None:
                role_name = await self._roles.resolve_role_name(identity.role_id)
        except (ProfileMissingError, NotFoundError, FetchError) as e:
            if generation == self._generation:
                logger.info("Identity refresh failed: %s", e)
                self.identity, self.role_name, self.error = None, None, e
            return
        if generation != self._generation:
            # A newer refresh (or close) superseded this one.
            return
        self.identity, self.role_name, self.error = identity, role_name, None

    def _on_session_change(self, session: Session | None) -> None:
        if self._unsubscribe is None:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def close(self) -> None:
        self._generation += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self.identity = None
        self.role_name = None

    async def wait_idle(self) -> None:
        """Wait for refreshes triggered by session changes."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
