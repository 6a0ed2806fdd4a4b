# src/taskgate/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store and session provider for the configured backend into AppState.
"""

from __future__ import annotations

import logging

from ..auth.sessions import InMemorySessionProvider, RestSessionProvider
from ..config import get_settings
from ..core.state import AppState, RouteNavigator
from ..store.local_store import LocalStore
from ..store.rest_store import RestStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.local_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if settings.backend == "rest":
        if not settings.api_url:
            raise RuntimeError("REST backend selected but TASKGATE_API_URL is not set.")
        sessions = RestSessionProvider(
            settings.api_url, settings.api_key, timeout=settings.http_timeout_seconds
        )
        store = RestStore(
            settings.api_url,
            settings.api_key,
            token_getter=lambda: sessions.access_token,
            timeout=settings.http_timeout_seconds,
        )
        logger.info("Using REST backend at %s", settings.api_url)
        return AppState(settings=settings, store=store, sessions=sessions, navigator=RouteNavigator())

    store = LocalStore(settings.local_db_path, admin_ids=settings.local_admins)
    logger.info("Using local backend at %s", settings.local_db_path)
    return AppState(
        settings=settings,
        store=store,
        sessions=InMemorySessionProvider(),
        navigator=RouteNavigator(),
    )


async def shutdown(state: AppState) -> None:
    """Close HTTP clients (the local store holds no open connections)."""
    for obj in (state.store, state.sessions):
        aclose = getattr(obj, "aclose", None)
        if aclose is not None:
            await aclose()
