# tests/test_visibility.py

from __future__ import annotations

from datetime import date

import pytest

from taskgate.core.errors import ValidationError
from taskgate.core.models import Task, TaskFilter
from taskgate.tasks.visibility import filter_tasks, parse_filter

TODAY = date(2024, 3, 10)


def make_task(task_id: int, *, assignee: str | None = None, deadline: date | None = None, status: int = 1) -> Task:
    return Task(
        id=task_id,
        title=f"t{task_id}",
        description=None,
        deadline=deadline,
        status_id=status,
        assignee_id=assignee,
        created_by="admin",
    )


TASKS = [
    make_task(1, assignee="u1", deadline=date(2024, 3, 9), status=1),  # overdue
    make_task(2, assignee="u1", deadline=TODAY, status=2),
    make_task(3, assignee="u2", deadline=date(2024, 3, 11), status=1),
    make_task(4, assignee=None, deadline=None, status=1),
    make_task(5, assignee="u1", deadline=date(2024, 3, 1), status=3),  # overdue, done
]


def ids(tasks) -> list[int]:
    return [t.id for t in tasks]


def test_default_filter_keeps_everything_in_order() -> None:
    assert ids(filter_tasks(TASKS, TaskFilter(), today=TODAY)) == [1, 2, 3, 4, 5]


def test_predicates_compose_with_and() -> None:
    criteria = TaskFilter(assignee="u1", deadline="overdue", status=1)
    assert ids(filter_tasks(TASKS, criteria, today=TODAY)) == [1]


def test_assignee_unassigned() -> None:
    assert ids(filter_tasks(TASKS, TaskFilter(assignee="unassigned"), today=TODAY)) == [4]


def test_deadline_today_and_overdue() -> None:
    assert ids(filter_tasks(TASKS, TaskFilter(deadline="today"), today=TODAY)) == [2]
    assert ids(filter_tasks(TASKS, TaskFilter(deadline="overdue"), today=TODAY)) == [1, 5]


def test_tasks_without_deadline_only_match_all() -> None:
    no_deadline = [make_task(9)]
    assert ids(filter_tasks(no_deadline, TaskFilter(deadline="today"), today=TODAY)) == []
    assert ids(filter_tasks(no_deadline, TaskFilter(deadline="overdue"), today=TODAY)) == []
    assert ids(filter_tasks(no_deadline, TaskFilter(), today=TODAY)) == [9]


def test_status_filter() -> None:
    assert ids(filter_tasks(TASKS, TaskFilter(status=1), today=TODAY)) == [1, 3, 4]


def test_filter_is_idempotent() -> None:
    criteria = TaskFilter(assignee="u1", deadline="overdue")
    once = filter_tasks(TASKS, criteria, today=TODAY)
    assert filter_tasks(once, criteria, today=TODAY) == once


def test_unknown_deadline_bucket_rejected() -> None:
    with pytest.raises(ValidationError):
        filter_tasks(TASKS, TaskFilter(deadline="tomorrow"), today=TODAY)


def test_parse_filter_any_order() -> None:
    assert parse_filter(["status=2", "assignee=u1", "deadline=Today"]) == TaskFilter(
        assignee="u1", deadline="today", status=2
    )
    assert parse_filter([]) == TaskFilter()


@pytest.mark.parametrize("args", [["owner=u1"], ["status=open"], ["deadline=soon"], ["assignee="], ["u1"]])
def test_parse_filter_rejects_bad_words(args) -> None:
    with pytest.raises(ValidationError):
        parse_filter(args)
