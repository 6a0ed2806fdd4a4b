# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskgate.auth.sessions import InMemorySessionProvider
from taskgate.core.state import AppState, RouteNavigator
from taskgate.store.local_store import LocalStore

from .fakes import FakeStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the views.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    return SimpleNamespace(
        app_name="taskgate-test",
        backend="local",
        data_dir=tmp_path,
        local_db_path=tmp_path / "taskgate.sqlite3",
        local_admins=["admin"],
        login_route="/login",
        dashboard_route="/dashboard",
        admin_route="/admin",
        fallback_route="/dashboard",
        require_status_on_create=False,
        require_assignee_on_create=True,
        default_status_id=1,
    )


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def sessions() -> InMemorySessionProvider:
    return InMemorySessionProvider()


@pytest.fixture()
def navigator() -> RouteNavigator:
    return RouteNavigator()


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired with the real SQLite store and in-memory sessions.

    The local store is part of what we want to exercise end to end.
    """
    return AppState(
        settings=settings,
        store=LocalStore(settings.local_db_path, admin_ids=settings.local_admins),
        sessions=InMemorySessionProvider(),
        navigator=RouteNavigator(),
    )
