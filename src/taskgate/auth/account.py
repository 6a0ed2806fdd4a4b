# src/taskgate/auth/account.py

from __future__ import annotations

import logging

from ..core.errors import MutationError, StoreError
from ..core.models import Profile, RoleName
from ..core.ports import Navigator, RemoteStore, SessionProvider
from .identity import PROFILES, IdentityResolver, fetch_profile
from .roles import RoleDirectory

logger = logging.getLogger(__name__)


async def ensure_profile(store: RemoteStore, roles: RoleDirectory, user_id: str, email: str | None) -> Profile:
    """
    Provision the profile row for a freshly signed-up identity.

    New accounts get the plain "user" role; an existing profile is returned
    unchanged so repeated sign-ups never demote an admin.
    """
    existing = await fetch_profile(store, user_id)
    if existing is not None:
        return existing

    role_id = await roles.resolve_role_id(RoleName.USER)
    try:
        row = await store.insert(PROFILES, {"id": user_id, "email": email, "role_id": role_id})
    except StoreError as e:
        raise MutationError(f"Failed to create profile: {e}") from e
    logger.info("Provisioned profile user=%s role_id=%s", user_id, role_id)
    return Profile.from_record(row)


async def landing_route(resolver: IdentityResolver, roles: RoleDirectory, settings) -> str:
    """Where to go right after signing in: admins to the admin view, everyone else to the dashboard."""
    identity = await resolver.current_identity()
    if identity is None:
        return settings.login_route
    if identity.role_id is not None and await roles.resolve_role_name(identity.role_id) == RoleName.ADMIN:
        return settings.admin_route
    return settings.dashboard_route


async def sign_out(sessions: SessionProvider, navigator: Navigator, login_route: str = "/login") -> None:
    await sessions.sign_out()
    navigator.redirect(login_route)


async def check_backend(sessions: SessionProvider) -> str:
    """Connectivity check for the auth platform, as a one-line status."""
    try:
        session = await sessions.get_session()
    except StoreError as e:
        return f"Backend error: {e}"
    return f"Backend reachable. Session: {'present' if session is not None else 'none'}"
