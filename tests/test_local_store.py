# tests/test_local_store.py

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from taskgate.core.errors import StoreError
from taskgate.core.models import TaskDraft
from taskgate.store.local_store import LocalStore
from taskgate.tasks.task_cache import LoadScope, TaskCache, TaskCreationPolicy


@pytest.fixture()
def local(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "db.sqlite3", admin_ids=["boss"])


@pytest.mark.asyncio
async def test_seeds_roles_statuses_and_admins(local: LocalStore) -> None:
    roles = await local.select("roles", order=[("id", False)])
    assert [(r["id"], r["name"]) for r in roles] == [(1, "user"), (2, "admin")]

    statuses = await local.select("statuses", order=[("id", False)])
    assert [s["name"] for s in statuses] == ["todo", "in_progress", "done"]

    assert await local.select("profiles") == [{"id": "boss", "email": None, "role_id": 2}]


def test_reopening_does_not_duplicate_seed(tmp_path: Path) -> None:
    path = tmp_path / "db.sqlite3"
    LocalStore(path, admin_ids=["boss"])
    LocalStore(path, admin_ids=["boss"])

    conn = sqlite3.connect(path)
    try:
        assert conn.execute("SELECT COUNT(*) FROM roles").fetchone()[0] == 2
        assert conn.execute("SELECT COUNT(*) FROM profiles").fetchone()[0] == 1
    finally:
        conn.close()


@pytest.mark.asyncio
async def test_task_crud(local: LocalStore) -> None:
    await local.insert("profiles", {"id": "u1", "email": "u1@example.com", "role_id": 1})

    row = await local.insert("tasks", {"title": "Ship", "status_id": 1, "assignee_id": "u1", "created_by": "boss"})
    assert row["id"] >= 1
    assert row["created_at"]

    updated = await local.update("tasks", row["id"], {"status_id": 3})
    assert updated["status_id"] == 3
    assert updated["title"] == "Ship"

    assert await local.select("tasks", {"assignee_id": "u1"}) == [updated]
    assert await local.select("tasks", {"assignee_id": None}) == []

    await local.delete("tasks", row["id"])
    assert await local.select("tasks") == []


@pytest.mark.asyncio
async def test_missing_rows_and_bad_columns_raise_store_error(local: LocalStore) -> None:
    with pytest.raises(StoreError):
        await local.delete("tasks", 999)
    with pytest.raises(StoreError):
        await local.update("tasks", 999, {"status_id": 2})
    with pytest.raises(StoreError):
        await local.select("tasks", {"owner": "x"})
    with pytest.raises(StoreError):
        await local.select("secrets")


@pytest.mark.asyncio
async def test_constraint_violation_becomes_store_error(local: LocalStore) -> None:
    with pytest.raises(StoreError):
        await local.insert("tasks", {"title": "x", "status_id": 42})


def test_migrates_old_task_table(tmp_path: Path) -> None:
    path = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE tasks (id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT NOT NULL, status_id INTEGER)")
    conn.commit()
    conn.close()

    LocalStore(path)

    conn = sqlite3.connect(path)
    try:
        cols = {r[1] for r in conn.execute("PRAGMA table_info(tasks)").fetchall()}
    finally:
        conn.close()
    assert {"description", "deadline", "assignee_id", "created_by", "created_at"} <= cols


@pytest.mark.asyncio
async def test_cache_over_local_store(local: LocalStore) -> None:
    await local.insert("profiles", {"id": "u1", "email": None, "role_id": 1})
    cache = TaskCache(local, "boss", policy=TaskCreationPolicy(require_assignee=False))
    await cache.load(LoadScope.ALL)

    first = await cache.create(TaskDraft(title="first"))
    second = await cache.create(TaskDraft(title="second", assignee_id="u1"))
    assert [t.id for t in cache.tasks] == [second.id, first.id]

    await cache.update_status(first.id, 2)
    await cache.load(LoadScope.ALL)
    assert cache.get(first.id).status_id == 2

    member = TaskCache(local, "u1")
    await member.load(LoadScope.ASSIGNED)
    assert [t.title for t in member.tasks] == ["second"]
