# tests/test_config_bootstrap.py

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

import pytest

from taskgate.auth.sessions import InMemorySessionProvider, RestSessionProvider
from taskgate.cli.bootstrap import create_initial_state, shutdown
from taskgate.config import Settings
from taskgate.logging_setup import _ConsoleNoiseFilter
from taskgate.store.local_store import LocalStore
from taskgate.store.rest_store import RestStore


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in list(os.environ):
        if key.startswith("TASKGATE_"):
            monkeypatch.delenv(key)
    return monkeypatch


def test_defaults(clean_env) -> None:
    s = Settings.from_env()
    assert s.backend == "local"
    assert s.login_route == "/login"
    assert s.fallback_route == s.dashboard_route == "/dashboard"
    assert s.local_db_path == Path(".local/taskgate") / "taskgate.sqlite3"
    assert s.require_assignee_on_create is True
    assert s.require_status_on_create is False
    assert s.default_status_id == 1
    assert s.local_admins == []


def test_env_overrides(clean_env, tmp_path: Path) -> None:
    clean_env.setenv("TASKGATE_BACKEND", "REST")
    clean_env.setenv("TASKGATE_API_URL", "https://example.test/")
    clean_env.setenv("TASKGATE_DATA_DIR", str(tmp_path))
    clean_env.setenv("TASKGATE_LOCAL_ADMINS", "boss, chief")
    clean_env.setenv("TASKGATE_REQUIRE_STATUS_ON_CREATE", "yes")
    clean_env.setenv("TASKGATE_DEFAULT_STATUS_ID", "not-a-number")
    clean_env.setenv("TASKGATE_HTTP_TIMEOUT_SECONDS", "0.1")

    s = Settings.from_env()
    assert s.backend == "rest"
    assert s.api_url == "https://example.test"
    assert s.local_db_path == tmp_path / "taskgate.sqlite3"
    assert s.local_admins == ["boss", "chief"]
    assert s.require_status_on_create is True
    assert s.default_status_id == 1
    assert s.http_timeout_seconds == 1.0


def test_unknown_backend_falls_back_to_local(clean_env) -> None:
    clean_env.setenv("TASKGATE_BACKEND", "mongo")
    assert Settings.from_env().backend == "local"


@pytest.mark.asyncio
async def test_bootstrap_local(clean_env, tmp_path: Path) -> None:
    clean_env.setenv("TASKGATE_DATA_DIR", str(tmp_path / "data"))
    state = create_initial_state(settings=Settings.from_env())

    assert isinstance(state.store, LocalStore)
    assert isinstance(state.sessions, InMemorySessionProvider)
    assert (tmp_path / "data" / "taskgate.sqlite3").exists()
    await shutdown(state)


@pytest.mark.asyncio
async def test_bootstrap_rest(clean_env, tmp_path: Path) -> None:
    settings = replace(
        Settings.from_env(), backend="rest", api_url="https://example.test", data_dir=tmp_path,
        local_db_path=tmp_path / "unused.sqlite3",
    )
    state = create_initial_state(settings=settings)

    assert isinstance(state.store, RestStore)
    assert isinstance(state.sessions, RestSessionProvider)
    await shutdown(state)


def test_bootstrap_rest_requires_url(clean_env, tmp_path: Path) -> None:
    settings = replace(
        Settings.from_env(), backend="rest", api_url="", data_dir=tmp_path, local_db_path=tmp_path / "x.sqlite3"
    )
    with pytest.raises(RuntimeError):
        create_initial_state(settings=settings)


def test_console_filter_quiets_transport_chatter() -> None:
    f = _ConsoleNoiseFilter()

    def record(name: str, level: int) -> logging.LogRecord:
        return logging.LogRecord(name, level, __file__, 1, "msg", None, None)

    assert f.filter(record("taskgate.tasks.task_cache", logging.INFO))
    assert not f.filter(record("taskgate.store.rest_store", logging.INFO))
    assert f.filter(record("taskgate.store.rest_store", logging.WARNING))
    assert not f.filter(record("httpx", logging.WARNING))
