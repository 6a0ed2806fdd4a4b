# src/taskgate/tasks/reference.py

from __future__ import annotations

import logging

from ..auth.identity import PROFILES
from ..auth.roles import RoleDirectory
from ..core.errors import FetchError, StoreError
from ..core.models import Profile, RoleName, Status
from ..core.ports import RemoteStore

logger = logging.getLogger(__name__)

STATUSES = "statuses"


async def list_statuses(store: RemoteStore) -> list[Status]:
    """Status reference set in display order (by id)."""
    try:
        rows = await store.select(STATUSES, None, (("id", False),))
    except StoreError as e:
        raise FetchError(f"Could not load statuses: {e}") from e
    return sorted((Status.from_record(r) for r in rows), key=lambda s: s.id)


async def list_assignable_profiles(store: RemoteStore, roles: RoleDirectory) -> list[Profile]:
    """Profiles that may be assigned tasks: everyone except admins."""
    admin_role_id = await roles.resolve_role_id(RoleName.ADMIN)
    try:
        rows = await store.select(PROFILES, None, (("email", False),))
    except StoreError as e:
        raise FetchError(f"Could not load profiles: {e}") from e
    profiles = [Profile.from_record(r) for r in rows]
    out = [p for p in profiles if p.role_id != admin_role_id]
    logger.debug("Assignable profiles: %d of %d", len(out), len(profiles))
    return out
