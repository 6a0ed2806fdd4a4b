# src/taskgate/core/models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any


class RoleName(StrEnum):
    USER = "user"
    ADMIN = "admin"


def _parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    # Date-only columns; tolerate a full timestamp as well.
    return date.fromisoformat(str(raw)[:10])


def _parse_datetime(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    s = str(raw)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def _opt_str(raw: Any) -> str | None:
    return None if raw is None else str(raw)


@dataclass(slots=True, frozen=True)
class Role:
    id: int
    name: str

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Role:
        return cls(id=int(row["id"]), name=str(row["name"]))


@dataclass(slots=True, frozen=True)
class Status:
    id: int
    name: str

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Status:
        return cls(id=int(row["id"]), name=str(row["name"]))


@dataclass(slots=True, frozen=True)
class Profile:
    id: str
    email: str | None
    role_id: int | None

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Profile:
        role_id = row.get("role_id")
        return cls(
            id=str(row["id"]),
            email=_opt_str(row.get("email")),
            role_id=int(role_id) if role_id is not None else None,
        )


@dataclass(slots=True, frozen=True)
class Task:
    """
    Cached projection of a remote task row.

    Instances are immutable: optimistic edits build a new Task with
    dataclasses.replace, so a pre-mutation snapshot can be restored as-is.
    """

    id: int
    title: str
    description: str | None
    deadline: date | None
    status_id: int
    assignee_id: str | None
    created_by: str | None
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> Task:
        return cls(
            id=int(row["id"]),
            title=str(row.get("title") or ""),
            description=_opt_str(row.get("description")),
            deadline=_parse_date(row.get("deadline")),
            status_id=int(row["status_id"]),
            assignee_id=_opt_str(row.get("assignee_id")),
            created_by=_opt_str(row.get("created_by")),
            created_at=_parse_datetime(row.get("created_at")),
        )


@dataclass(slots=True)
class TaskDraft:
    """Create-form state. The engine reads it and never clears it."""

    title: str
    description: str | None = None
    deadline: date | None = None
    status_id: int | None = None
    assignee_id: str | None = None


@dataclass(slots=True, frozen=True)
class Session:
    user_id: str
    email: str | None = None
    access_token: str | None = None


@dataclass(slots=True, frozen=True)
class Identity:
    user_id: str
    email: str | None
    role_id: int | None


@dataclass(slots=True, frozen=True)
class TaskFilter:
    """
    Visibility criteria.

    assignee: "all" | "unassigned" | <user id>
    deadline: "all" | "today" | "overdue"
    status:   "all" | <status id>
    """

    assignee: str = "all"
    deadline: str = "all"
    status: int | str = "all"
