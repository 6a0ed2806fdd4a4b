# src/taskgate/auth/roles.py

from __future__ import annotations

import logging

from ..core.errors import FetchError, NotFoundError, StoreError
from ..core.models import Role
from ..core.ports import RemoteStore

logger = logging.getLogger(__name__)

ROLES = "roles"


class RoleDirectory:
    """
    Role id <-> role name lookups against the `roles` reference collection.

    The role set changes rarely, so resolved records are memoized for the
    lifetime of the directory. Create one directory per authorization check
    (or per view) to pick up changes.
    """

    def __init__(self, store: RemoteStore) -> None:
        self._store = store
        self._by_id: dict[int, Role] = {}
        self._by_name: dict[str, Role] = {}

    def _remember(self, role: Role) -> Role:
        self._by_id[role.id] = role
        self._by_name[role.name] = role
        return role

    async def _lookup_one(self, column: str, value: object) -> Role:
        try:
            rows = await self._store.select(ROLES, {column: value})
        except StoreError as e:
            raise FetchError(f"Role lookup failed: {e}") from e
        if not rows:
            raise NotFoundError(ROLES, value)
        role = Role.from_record(rows[0])
        logger.debug("Resolved role %s=%r -> id=%s name=%s", column, value, role.id, role.name)
        return self._remember(role)

    async def resolve_role_id(self, name: str) -> int:
        name = str(name)
        cached = self._by_name.get(name)
        if cached is not None:
            return cached.id
        return (await self._lookup_one("name", name)).id

    async def resolve_role_name(self, role_id: int) -> str:
        cached = self._by_id.get(int(role_id))
        if cached is not None:
            return cached.name
        return (await self._lookup_one("id", int(role_id))).name
