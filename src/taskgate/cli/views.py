# src/taskgate/cli/views.py

"""
Console views.

A view is one protected page: it owns its gate, its identity context and its
own TaskCache. Two views never share a cache.

- admin:     requires the admin role, shows all tasks, can create/assign/delete
- dashboard: any signed-in user, shows tasks assigned to them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..auth.gate import LOADING_PLACEHOLDER, AuthorizationGate, GateState
from ..auth.identity import IdentityContext, IdentityResolver
from ..auth.roles import RoleDirectory
from ..core.models import Profile, RoleName, Status, Task, TaskFilter
from ..core.state import AppState
from ..tasks.reference import list_assignable_profiles, list_statuses
from ..tasks.task_cache import LoadScope, TaskCache, TaskCreationPolicy
from ..tasks.visibility import filter_tasks

logger = logging.getLogger(__name__)

HOME_ROUTE = "/"


@dataclass(frozen=True, slots=True)
class ViewSpec:
    name: str
    route: str
    required_role: str | None
    fallback_route: str
    scope: LoadScope

    @property
    def is_admin(self) -> bool:
        return self.required_role == RoleName.ADMIN


def view_specs(settings) -> dict[str, ViewSpec]:
    return {
        "admin": ViewSpec(
            name="admin",
            route=settings.admin_route,
            required_role=RoleName.ADMIN,
            fallback_route=settings.fallback_route,
            scope=LoadScope.ALL,
        ),
        "dashboard": ViewSpec(
            name="dashboard",
            route=settings.dashboard_route,
            required_role=None,
            fallback_route=HOME_ROUTE,
            scope=LoadScope.ASSIGNED,
        ),
    }


def spec_for_route(settings, route: str) -> ViewSpec | None:
    for spec in view_specs(settings).values():
        if spec.route == route:
            return spec
    return None


class TaskView:
    def __init__(self, state: AppState, spec: ViewSpec) -> None:
        self.state = state
        self.spec = spec
        self.roles = RoleDirectory(state.store)
        self.resolver = IdentityResolver(state.sessions, state.store)
        self.gate = AuthorizationGate(
            self.resolver,
            self.roles,
            state.sessions,
            state.navigator,
            required_role=spec.required_role,
            login_route=state.settings.login_route,
            fallback_route=spec.fallback_route,
        )
        self.context = IdentityContext(self.resolver, state.sessions, self.roles)
        self.cache: TaskCache | None = None
        self.statuses: list[Status] = []
        self.assignable: list[Profile] = []
        self.filter = TaskFilter()

    @property
    def route(self) -> str:
        return self.spec.route

    @property
    def assignable_ids(self) -> set[str]:
        return {p.id for p in self.assignable}

    async def mount(self) -> GateState:
        self.state.navigator.redirect(self.route)
        decision = await self.gate.mount()
        if decision != GateState.AUTHORIZED:
            self.gate.unmount()
            return decision

        await self.context.open()
        identity = self.context.identity
        if identity is None:
            # Signed out between the gate check and now.
            await self.unmount()
            return GateState.UNAUTHENTICATED

        self.cache = TaskCache(
            self.state.store,
            identity.user_id,
            policy=TaskCreationPolicy.from_settings(self.state.settings),
        )
        self.statuses = await list_statuses(self.state.store)
        if self.spec.is_admin:
            self.assignable = await list_assignable_profiles(self.state.store, self.roles)
        await self.cache.load(self.spec.scope)
        logger.info("View %s mounted for user=%s", self.spec.name, identity.user_id)
        return decision

    async def unmount(self) -> None:
        self.gate.unmount()
        await self.context.close()
        self.cache = None
        logger.debug("View %s unmounted", self.spec.name)

    # ---- rendering ----

    def status_name(self, status_id: int) -> str:
        for s in self.statuses:
            if s.id == status_id:
                return s.name
        return str(status_id)

    def user_label(self, user_id: str | None) -> str:
        if user_id is None:
            return "unassigned"
        for p in self.assignable:
            if p.id == user_id:
                return p.email or p.id
        return user_id

    def format_task(self, task: Task) -> str:
        parts = [f"#{task.id} [{self.status_name(task.status_id)}] {task.title}"]
        if task.deadline is not None:
            parts.append(f"due {task.deadline.isoformat()}")
        if self.spec.is_admin:
            parts.append(f"-> {self.user_label(task.assignee_id)}")
        if self.cache is not None and self.cache.is_busy(task.id):
            parts.append("(saving...)")
        return "  ".join(parts)

    def visible_tasks(self) -> list[Task]:
        if self.cache is None:
            return []
        return filter_tasks(self.cache.tasks, self.filter)

    def render(self) -> str:
        if self.cache is None:
            return LOADING_PLACEHOLDER
        tasks = self.visible_tasks()
        header = f"{self.spec.name}: {len(tasks)} of {len(self.cache.tasks)} task(s)"
        if not tasks:
            body = f"{header}\n  (nothing to show)"
        else:
            body = "\n".join([header, *(f"  {self.format_task(t)}" for t in tasks)])
        return self.gate.render(body)
