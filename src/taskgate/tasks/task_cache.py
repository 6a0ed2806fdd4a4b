# src/taskgate/tasks/task_cache.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Collection, Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from ..core.errors import FetchError, MutationError, NotFoundError, StoreError, TaskBusyError, ValidationError
from ..core.models import Status, Task, TaskDraft
from ..core.ports import RemoteStore
from .optimistic import run_optimistic
from .transitions import apply_patch, assignee_patch, status_patch

logger = logging.getLogger(__name__)

TASKS = "tasks"

# Newest first; ties broken by id.
TASK_ORDER: tuple[tuple[str, bool], ...] = (("created_at", True), ("id", True))

ConfirmFn = Callable[[Task], bool | Awaitable[bool]]


class LoadScope(str, Enum):
    ALL = "all"  # admin view
    ASSIGNED = "assigned"  # member view: assignee_id = current user


@dataclass(frozen=True, slots=True)
class TaskCreationPolicy:
    """
    Which fields the create form must supply.

    require_status=False means an omitted status falls back to default_status_id.
    """

    require_status: bool = False
    require_assignee: bool = True
    default_status_id: int = 1

    @classmethod
    def from_settings(cls, settings: Any) -> TaskCreationPolicy:
        return cls(
            require_status=bool(getattr(settings, "require_status_on_create", False)),
            require_assignee=bool(getattr(settings, "require_assignee_on_create", True)),
            default_status_id=int(getattr(settings, "default_status_id", 1)),
        )


def _order_key(task: Task) -> tuple[bool, float, int]:
    ts = task.created_at.timestamp() if task.created_at is not None else 0.0
    return (task.created_at is not None, ts, task.id)


def sort_newest_first(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=_order_key, reverse=True)


class TaskCache:
    """
    Per-view in-memory mirror of the remote task collection.

    Mutations are optimistic: the cache changes first, the remote call
    follows, and a failed call restores the pre-mutation state before the
    error reaches the caller (also kept in `last_error` for display).

    At most one mutation per task is in flight: while a task's marker is set,
    further edits of that task are rejected with TaskBusyError.
    """

    def __init__(
            self,
            store: RemoteStore,
            user_id: str,
            *,
            policy: TaskCreationPolicy | None = None,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self.policy = policy or TaskCreationPolicy()
        self.scope: LoadScope | None = None
        self.last_error: Exception | None = None
        self._tasks: list[Task] = []
        self._in_flight: set[int] = set()

    # ---- read side ----

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    def get(self, task_id: int) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def is_busy(self, task_id: int) -> bool:
        return task_id in self._in_flight

    def _require(self, task_id: int) -> Task:
        task = self.get(task_id)
        if task is None:
            raise NotFoundError(TASKS, task_id)
        return task

    def _index_of(self, task_id: int) -> int:
        for i, t in enumerate(self._tasks):
            if t.id == task_id:
                return i
        raise NotFoundError(TASKS, task_id)

    def _in_scope(self, task: Task) -> bool:
        return self.scope != LoadScope.ASSIGNED or task.assignee_id == self._user_id

    # ---- load ----

    async def load(self, scope: LoadScope = LoadScope.ALL) -> tuple[Task, ...]:
        filters = {"assignee_id": self._user_id} if scope == LoadScope.ASSIGNED else None
        try:
            rows = await self._store.select(TASKS, filters, TASK_ORDER)
        except StoreError as e:
            err = FetchError(f"Could not load tasks: {e}")
            self.last_error = err
            logger.warning("Task load failed scope=%s: %s", scope.value, e)
            raise err from e

        self._tasks = sort_newest_first(Task.from_record(r) for r in rows)
        self.scope = scope
        self.last_error = None
        logger.info("Loaded %d tasks scope=%s", len(self._tasks), scope.value)
        return self.tasks

    # ---- create ----

    def build_record(self, draft: TaskDraft, *, assignable_ids: Collection[str] | None = None) -> dict[str, Any]:
        """Validate a draft and turn it into an insert payload. No remote call."""
        title = (draft.title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        status_id = draft.status_id
        if status_id is None:
            if self.policy.require_status:
                raise ValidationError("Status is required")
            status_id = self.policy.default_status_id

        assignee_id = draft.assignee_id or None
        if assignee_id is None and self.policy.require_assignee:
            raise ValidationError("Assignee is required")
        if assignee_id is not None and assignable_ids is not None and assignee_id not in assignable_ids:
            raise ValidationError(f"User {assignee_id} cannot be assigned tasks")

        deadline: date | None = draft.deadline
        description = (draft.description or "").strip() or None

        return {
            "title": title,
            "description": description,
            "deadline": deadline.isoformat() if deadline is not None else None,
            "status_id": int(status_id),
            "assignee_id": assignee_id,
            "created_by": self._user_id,
        }

    async def create(self, draft: TaskDraft, *, assignable_ids: Collection[str] | None = None) -> Task:
        """
        Insert a task and prepend the server's record.

        The draft is left untouched either way, so a failed create can be
        retried with the same form state.
        """
        record = self.build_record(draft, assignable_ids=assignable_ids)
        try:
            row = await self._store.insert(TASKS, record)
        except StoreError as e:
            err = MutationError(f"Could not create task: {e}")
            self.last_error = err
            logger.info("Task create failed title=%r: %s", record["title"], e)
            raise err from e

        task = Task.from_record(row)
        if self._in_scope(task):
            self._tasks.insert(0, task)
        self.last_error = None
        logger.info("Task created id=%s assignee=%s status=%s", task.id, task.assignee_id, task.status_id)
        return task

    # ---- remove ----

    async def remove(self, task_id: int, *, confirm: ConfirmFn) -> bool:
        """
        Delete a task after an explicit confirmation.

        Returns False when the user declines. On remote failure the exact
        same Task object goes back to its original position.
        """
        task = self._require(task_id)
        if self.is_busy(task_id):
            raise TaskBusyError(task_id)

        answer = confirm(task)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            logger.debug("Task delete declined id=%s", task_id)
            return False

        if self.is_busy(task_id):
            raise TaskBusyError(task_id)

        def apply() -> tuple[int, Task]:
            idx = self._index_of(task_id)
            removed = self._tasks.pop(idx)
            return idx, removed

        def revert(snapshot: tuple[int, Task]) -> None:
            idx, removed = snapshot
            self._tasks.insert(min(idx, len(self._tasks)), removed)

        self._in_flight.add(task_id)
        try:
            await run_optimistic(
                f"Delete task {task_id}",
                apply=apply,
                remote=lambda: self._store.delete(TASKS, task_id),
                revert=revert,
            )
        except MutationError as e:
            self.last_error = e
            raise
        finally:
            self._in_flight.discard(task_id)

        self.last_error = None
        logger.info("Task deleted id=%s", task_id)
        return True

    # ---- status / assignment ----

    async def update_status(
            self,
            task_id: int,
            status_id: int,
            *,
            statuses: Iterable[Status] | None = None,
    ) -> Task:
        task = self._require(task_id)
        return await self._update(task, status_patch(task, status_id, statuses), "status")

    async def update_assignee(
            self,
            task_id: int,
            assignee_id: str | None,
            *,
            assignable_ids: Collection[str] | None = None,
    ) -> Task:
        task = self._require(task_id)
        return await self._update(task, assignee_patch(task, assignee_id, assignable_ids), "assignee")

    async def _update(self, task: Task, patch: dict[str, Any], what: str) -> Task:
        task_id = task.id
        if self.is_busy(task_id):
            raise TaskBusyError(task_id)

        def apply() -> list[Task]:
            snapshot = list(self._tasks)
            idx = self._index_of(task_id)
            self._tasks[idx] = apply_patch(self._tasks[idx], patch)
            return snapshot

        def revert(snapshot: list[Task]) -> None:
            # Restore the snapshot, keeping removals and creations that
            # completed while this update was in flight.
            current = {t.id for t in self._tasks}
            before = {t.id for t in snapshot}
            added = [t for t in self._tasks if t.id not in before]
            self._tasks = added + [t for t in snapshot if t.id in current]

        def confirm(row: dict[str, Any]) -> None:
            fresh = Task.from_record(row)
            for i, t in enumerate(self._tasks):
                if t.id == task_id:
                    self._tasks[i] = fresh
                    break

        self._in_flight.add(task_id)
        try:
            await run_optimistic(
                f"Update {what} of task {task_id}",
                apply=apply,
                remote=lambda: self._store.update(TASKS, task_id, patch),
                revert=revert,
                confirm=confirm,
            )
        except MutationError as e:
            self.last_error = e
            raise
        finally:
            self._in_flight.discard(task_id)

        self.last_error = None
        logger.info("Task %s updated id=%s patch=%s", what, task_id, patch)
        return self.get(task_id) or task
