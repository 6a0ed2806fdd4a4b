# src/taskgate/core/errors.py

"""
Error taxonomy.

- StoreError: a collaborator (remote store, session provider) call failed.
- NotFoundError: a reference lookup (e.g. role name) has no record.
- ProfileMissingError: a session exists but no profile row is provisioned.
- FetchError / MutationError: a remote read / write failed; local state has
  already been rolled back when these reach the caller.
- ValidationError: rejected locally, before any remote call.
- TaskBusyError: a mutation for the same task is still in flight.

Unauthenticated is not an error: the identity resolver returns None.
"""

from __future__ import annotations


class TaskGateError(Exception):
    """Base class for every error raised by taskgate."""


class StoreError(TaskGateError):
    """Remote store or session provider failure (transport, HTTP status, SQL)."""


class NotFoundError(TaskGateError):
    def __init__(self, collection: str, key: object) -> None:
        super().__init__(f"No {collection} record for {key!r}")
        self.collection = collection
        self.key = key


class ProfileMissingError(TaskGateError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"Signed in as {user_id}, but no profile is provisioned yet")
        self.user_id = user_id


class FetchError(TaskGateError):
    pass


class MutationError(TaskGateError):
    pass


class ValidationError(TaskGateError):
    pass


class TaskBusyError(TaskGateError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} is already being updated")
        self.task_id = task_id
