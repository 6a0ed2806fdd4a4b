# src/taskgate/tasks/transitions.py

from __future__ import annotations

import dataclasses
from collections.abc import Collection, Iterable
from typing import Any

from ..core.errors import ValidationError
from ..core.models import Status, Task


def status_patch(task: Task, status_id: int, statuses: Iterable[Status] | None = None) -> dict[str, Any]:
    """Patch for a status change; validated against the status list when given."""
    status_id = int(status_id)
    if statuses is not None and status_id not in {s.id for s in statuses}:
        raise ValidationError(f"Unknown status {status_id}")
    return {"status_id": status_id}


def assignee_patch(
        task: Task,
        assignee_id: str | None,
        assignable_ids: Collection[str] | None = None,
) -> dict[str, Any]:
    """
    Patch for an assignment change. None unassigns.

    assignable_ids is the set of non-admin profile ids; admins cannot be
    assigned tasks.
    """
    if assignee_id is not None and assignable_ids is not None and assignee_id not in assignable_ids:
        raise ValidationError(f"User {assignee_id} cannot be assigned tasks")
    return {"assignee_id": assignee_id}


def apply_patch(task: Task, patch: dict[str, Any]) -> Task:
    """New Task with only the patched fields changed."""
    return dataclasses.replace(task, **patch)
