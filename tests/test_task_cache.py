# tests/test_task_cache.py

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from taskgate.core.errors import FetchError, MutationError, TaskBusyError, ValidationError
from taskgate.core.models import TaskDraft
from taskgate.tasks.optimistic import run_optimistic
from taskgate.tasks.task_cache import LoadScope, TaskCache, TaskCreationPolicy

from .fakes import task_row


def seed(store) -> None:
    # A is newest; B and C share a timestamp, so the higher id comes first.
    store.tables["tasks"] = [
        task_row(1, title="C", created_at="2024-01-01T09:00:00+00:00", assignee_id="u1"),
        task_row(2, title="B", created_at="2024-01-01T09:00:00+00:00", assignee_id="u2"),
        task_row(3, title="A", created_at="2024-01-02T09:00:00+00:00", assignee_id="u1"),
    ]


async def loaded_cache(store, scope=LoadScope.ALL, **kwargs) -> TaskCache:
    seed(store)
    cache = TaskCache(store, "admin", **kwargs)
    await cache.load(scope)
    return cache


def titles(cache: TaskCache) -> list[str]:
    return [t.title for t in cache.tasks]


async def yes(_task) -> bool:
    return True


# ---- load ----


@pytest.mark.asyncio
async def test_load_orders_newest_first(store) -> None:
    cache = await loaded_cache(store)
    assert titles(cache) == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_load_assigned_scope_only_shows_own_tasks(store) -> None:
    seed(store)
    cache = TaskCache(store, "u1")
    await cache.load(LoadScope.ASSIGNED)
    assert titles(cache) == ["A", "C"]


@pytest.mark.asyncio
async def test_load_failure_keeps_previous_contents(store) -> None:
    cache = await loaded_cache(store)
    before = cache.tasks
    store.fail("select", "tasks")

    with pytest.raises(FetchError):
        await cache.load(LoadScope.ALL)

    assert cache.tasks == before
    assert isinstance(cache.last_error, FetchError)


# ---- create ----


@pytest.mark.asyncio
async def test_create_rejects_empty_title_without_remote_call(store) -> None:
    cache = await loaded_cache(store)
    with pytest.raises(ValidationError):
        await cache.create(TaskDraft(title="   ", assignee_id="u1"))
    assert store.count("insert", "tasks") == 0


@pytest.mark.asyncio
async def test_create_requires_assignee_when_policy_says_so(store) -> None:
    cache = await loaded_cache(store, policy=TaskCreationPolicy(require_assignee=True))
    with pytest.raises(ValidationError):
        await cache.create(TaskDraft(title="Write report"))
    assert store.count("insert", "tasks") == 0


@pytest.mark.asyncio
async def test_create_requires_status_when_policy_says_so(store) -> None:
    cache = await loaded_cache(store, policy=TaskCreationPolicy(require_status=True, require_assignee=False))
    with pytest.raises(ValidationError):
        await cache.create(TaskDraft(title="Write report"))


@pytest.mark.asyncio
async def test_create_rejects_admin_assignee(store) -> None:
    cache = await loaded_cache(store)
    with pytest.raises(ValidationError):
        await cache.create(TaskDraft(title="x", assignee_id="admin"), assignable_ids={"u1", "u2"})
    assert store.count("insert", "tasks") == 0


@pytest.mark.asyncio
async def test_create_prepends_server_record(store) -> None:
    cache = await loaded_cache(store, policy=TaskCreationPolicy(require_assignee=False, default_status_id=3))
    task = await cache.create(TaskDraft(title="  New one ", deadline=date(2024, 5, 1)))

    assert task.id > 3
    assert task.title == "New one"
    assert task.status_id == 3
    assert task.created_by == "admin"
    assert task.deadline == date(2024, 5, 1)
    assert cache.tasks[0] is task
    assert titles(cache) == ["New one", "A", "B", "C"]


@pytest.mark.asyncio
async def test_create_failure_keeps_cache_and_draft(store) -> None:
    cache = await loaded_cache(store)
    before = cache.tasks
    draft = TaskDraft(title="Retry me", assignee_id="u1", status_id=2)
    store.fail("insert", "tasks")

    with pytest.raises(MutationError):
        await cache.create(draft)

    assert cache.tasks == before
    assert draft == TaskDraft(title="Retry me", assignee_id="u1", status_id=2)

    store.heal()
    task = await cache.create(draft)
    assert task.title == "Retry me"


# ---- remove ----


@pytest.mark.asyncio
async def test_remove_success(store) -> None:
    cache = await loaded_cache(store)
    b = cache.tasks[1]
    assert await cache.remove(b.id, confirm=yes) is True
    assert titles(cache) == ["A", "C"]


@pytest.mark.asyncio
async def test_remove_failure_restores_exact_snapshot(store) -> None:
    cache = await loaded_cache(store)
    before = cache.tasks
    store.fail("delete", "tasks")

    with pytest.raises(MutationError):
        await cache.remove(before[1].id, confirm=yes)

    after = cache.tasks
    assert len(after) == len(before)
    assert all(x is y for x, y in zip(after, before))
    assert isinstance(cache.last_error, MutationError)
    assert not cache.is_busy(before[1].id)


@pytest.mark.asyncio
async def test_remove_is_optimistic(store) -> None:
    cache = await loaded_cache(store)
    release = store.hold("delete", "tasks")
    removing = asyncio.create_task(cache.remove(2, confirm=yes))
    await asyncio.sleep(0)

    assert titles(cache) == ["A", "C"]
    assert cache.is_busy(2)

    release.set()
    assert await removing is True
    assert not cache.is_busy(2)


@pytest.mark.asyncio
async def test_remove_declined_makes_no_call(store) -> None:
    cache = await loaded_cache(store)
    assert await cache.remove(2, confirm=lambda _t: False) is False
    assert titles(cache) == ["A", "B", "C"]
    assert store.count("delete", "tasks") == 0


# ---- status / assignment ----


@pytest.mark.asyncio
async def test_status_update_is_optimistic_and_rolls_back(store) -> None:
    cache = await loaded_cache(store)
    release = store.hold("update", "tasks")
    store.fail("update", "tasks")

    updating = asyncio.create_task(cache.update_status(3, 2))
    await asyncio.sleep(0)

    assert cache.get(3).status_id == 2
    assert cache.is_busy(3)
    with pytest.raises(TaskBusyError):
        await cache.update_status(3, 3)

    release.set()
    with pytest.raises(MutationError):
        await updating

    assert cache.get(3).status_id == 1
    assert not cache.is_busy(3)


@pytest.mark.asyncio
async def test_status_update_confirms_with_server_row(store) -> None:
    cache = await loaded_cache(store)
    task = await cache.update_status(3, 3)
    assert task.status_id == 3
    assert cache.get(3).status_id == 3
    assert store.tables["tasks"][2]["status_id"] == 3
    assert not cache.is_busy(3)


@pytest.mark.asyncio
async def test_failed_update_restores_whole_snapshot(store) -> None:
    cache = await loaded_cache(store)
    before = cache.tasks
    store.fail("update", "tasks")

    with pytest.raises(MutationError):
        await cache.update_assignee(2, "u1")

    assert all(x is y for x, y in zip(cache.tasks, before))


@pytest.mark.asyncio
async def test_failed_update_keeps_changes_made_meanwhile(store) -> None:
    cache = await loaded_cache(store)
    release = store.hold("update", "tasks")
    store.fail("update", "tasks")

    updating = asyncio.create_task(cache.update_status(3, 2))
    await asyncio.sleep(0)

    assert await cache.remove(2, confirm=yes) is True
    created = await cache.create(TaskDraft(title="D", assignee_id="u1"))

    release.set()
    with pytest.raises(MutationError):
        await updating

    assert titles(cache) == ["D", "A", "C"]
    assert cache.tasks[0] is created
    assert cache.get(2) is None
    assert cache.get(3).status_id == 1


@pytest.mark.asyncio
async def test_assignee_update_validates_locally(store) -> None:
    cache = await loaded_cache(store)
    with pytest.raises(ValidationError):
        await cache.update_assignee(2, "admin", assignable_ids={"u1", "u2"})
    assert store.count("update", "tasks") == 0

    task = await cache.update_assignee(2, None, assignable_ids={"u1", "u2"})
    assert task.assignee_id is None


@pytest.mark.asyncio
async def test_distinct_tasks_can_be_in_flight_together(store) -> None:
    cache = await loaded_cache(store)
    release = store.hold("update", "tasks")
    first = asyncio.create_task(cache.update_status(1, 2))
    second = asyncio.create_task(cache.update_status(2, 3))
    await asyncio.sleep(0)

    assert cache.is_busy(1) and cache.is_busy(2)

    release.set()
    await asyncio.gather(first, second)
    assert cache.get(1).status_id == 2
    assert cache.get(2).status_id == 3


# ---- optimistic unit ----


@pytest.mark.asyncio
async def test_run_optimistic_reverts_on_cancellation() -> None:
    value = {"v": "old"}
    started = asyncio.Event()

    def apply() -> str:
        snapshot = value["v"]
        value["v"] = "new"
        return snapshot

    async def remote() -> None:
        started.set()
        await asyncio.Event().wait()

    def revert(snapshot: str) -> None:
        value["v"] = snapshot

    running = asyncio.create_task(run_optimistic("demo", apply=apply, remote=remote, revert=revert))
    await started.wait()
    assert value["v"] == "new"

    running.cancel()
    with pytest.raises(asyncio.CancelledError):
        await running
    assert value["v"] == "old"
