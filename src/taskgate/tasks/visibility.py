# src/taskgate/tasks/visibility.py

"""
Visibility filter.

Pure functions: which cached tasks a view shows for a given TaskFilter.
Predicates are independent and combined with AND, so their evaluation order
(assignee, deadline, status) only matters for speed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date

from ..core.errors import ValidationError
from ..core.models import Task, TaskFilter

ALL = "all"
UNASSIGNED = "unassigned"
TODAY = "today"
OVERDUE = "overdue"

DEADLINE_BUCKETS = (ALL, TODAY, OVERDUE)


def _assignee_ok(task: Task, assignee: str) -> bool:
    if assignee == ALL:
        return True
    if assignee == UNASSIGNED:
        return task.assignee_id is None
    return task.assignee_id == assignee


def _deadline_ok(task: Task, bucket: str, today: date) -> bool:
    if bucket == ALL:
        return True
    if task.deadline is None:
        return False
    if bucket == TODAY:
        return task.deadline == today
    if bucket == OVERDUE:
        return task.deadline < today
    raise ValidationError(f"Unknown deadline bucket: {bucket}")


def _status_ok(task: Task, status: int | str) -> bool:
    if status == ALL:
        return True
    return task.status_id == int(status)


def filter_tasks(tasks: Iterable[Task], criteria: TaskFilter, *, today: date | None = None) -> list[Task]:
    """
    Subsequence of `tasks` matching every predicate in `criteria`.

    `today` is the local calendar date, taken once per call so that a pass
    running across midnight still uses one date for every task.
    """
    if criteria.deadline not in DEADLINE_BUCKETS:
        raise ValidationError(f"Unknown deadline bucket: {criteria.deadline}")
    if today is None:
        today = date.today()

    return [
        t
        for t in tasks
        if _assignee_ok(t, criteria.assignee)
        and _deadline_ok(t, criteria.deadline, today)
        and _status_ok(t, criteria.status)
    ]


def parse_filter(args: Sequence[str]) -> TaskFilter:
    """
    Build a TaskFilter from console words, in any order:
    `assignee=<id|unassigned|all> deadline=<all|today|overdue> status=<id|all>`.
    """
    values: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        key = key.strip().lower()
        if not sep or key not in ("assignee", "deadline", "status") or not value.strip():
            raise ValidationError(f"Bad filter: {arg!r} (use assignee=, deadline= or status=)")
        values[key] = value.strip()

    status: int | str = values.get("status", ALL)
    if status != ALL:
        try:
            status = int(status)
        except ValueError as e:
            raise ValidationError(f"Status must be a number or 'all', got {status!r}") from e

    deadline = values.get("deadline", ALL).lower()
    if deadline not in DEADLINE_BUCKETS:
        raise ValidationError(f"Deadline must be one of {', '.join(DEADLINE_BUCKETS)}")

    return TaskFilter(assignee=values.get("assignee", ALL), deadline=deadline, status=status)
