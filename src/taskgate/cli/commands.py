# src/taskgate/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from typing import cast

from ..auth import account
from ..auth.gate import GateState
from ..auth.identity import IdentityResolver
from ..auth.roles import RoleDirectory
from ..auth.sessions import InMemorySessionProvider, RestSessionProvider
from ..core.errors import TaskGateError, ValidationError
from ..core.models import TaskDraft
from ..core.state import AppState
from ..tasks.visibility import parse_filter
from .views import TaskView, spec_for_route, view_specs

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Errors from the core (validation, rolled-back mutations, lookups)
        become the reply text; nothing is retried automatically.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        nparams = len(inspect.signature(handler).parameters)
        try:
            if nparams >= 3:
                return await cast(CommandHandler3, handler)(state, args, emit)
            return await cast(CommandHandler2, handler)(state, args)
        except TaskGateError as e:
            logger.info("/%s failed: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _require_view(state: AppState, *, admin: bool = False) -> TaskView:
    view = state.view
    if view is None or view.cache is None:
        raise ValidationError("No view is open. Use /open admin or /open dashboard.")
    if admin and not view.spec.is_admin:
        raise ValidationError("Only available in the admin view.")
    return cast(TaskView, view)


def _task_id(raw: str) -> int:
    try:
        return int(raw.lstrip("#"))
    except ValueError as e:
        raise ValidationError(f"Task id must be a number, got {raw!r}") from e


def _resolve_status(view: TaskView, raw: str) -> int:
    for s in view.statuses:
        if raw == str(s.id) or raw.lower() == s.name.lower():
            return s.id
    raise ValidationError(f"Unknown status {raw!r}. Use /statuses to list them.")


def _resolve_user(view: TaskView, raw: str) -> str | None:
    if raw.lower() in ("none", "-", "unassigned"):
        return None
    for p in view.assignable:
        if raw == p.id or (p.email and raw.lower() == p.email.lower()):
            return p.id
    return raw


def parse_draft(view: TaskView, args: list[str]) -> TaskDraft:
    """
    `/new <title words> | status=todo assignee=<user> deadline=YYYY-MM-DD desc=<text>`

    Everything before `|` is the title.
    """
    text = " ".join(args)
    title, _, rest = text.partition("|")
    draft = TaskDraft(title=title.strip())
    for item in rest.split():
        key, sep, value = item.partition("=")
        key = key.lower()
        if not sep:
            raise ValidationError(f"Bad field: {item!r} (use key=value)")
        if key == "status":
            draft.status_id = _resolve_status(view, value)
        elif key == "assignee":
            draft.assignee_id = _resolve_user(view, value)
        elif key == "deadline":
            try:
                draft.deadline = date.fromisoformat(value)
            except ValueError as e:
                raise ValidationError(f"Deadline must be YYYY-MM-DD, got {value!r}") from e
        elif key in ("desc", "description"):
            draft.description = value.replace("_", " ")
        else:
            raise ValidationError(f"Unknown field: {key}")
    return draft


async def close_view(state: AppState) -> None:
    if state.view is not None:
        await state.view.unmount()
        state.view = None


async def open_route(state: AppState, route: str) -> str:
    spec = spec_for_route(state.settings, route)
    if spec is None:
        return f"Now at {route}."
    return await _open(state, spec.name)


async def _open(state: AppState, name: str) -> str:
    specs = view_specs(state.settings)
    spec = specs.get(name)
    if spec is None:
        return f"Unknown view: {name}. Choose one of: {', '.join(specs)}."

    await close_view(state)
    view = TaskView(state, spec)
    try:
        decision = await view.mount()
    except TaskGateError:
        await view.unmount()
        raise
    if decision != GateState.AUTHORIZED:
        return f"Access to {name} denied ({decision.value}). Now at {state.navigator.route}."
    state.view = view
    return view.render()


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_login(state: AppState, args: list[str]) -> str:
    """
    /login <user_id> [email]    (local backend)
    /login <email> <password>   (rest backend)
    """
    sessions = state.sessions
    if isinstance(sessions, RestSessionProvider):
        if len(args) != 2:
            return "Usage: /login <email> <password>"
        await sessions.sign_in_with_password(args[0], args[1])
    elif isinstance(sessions, InMemorySessionProvider):
        if not args:
            return "Usage: /login <user_id> [email]"
        await sessions.sign_in(args[0], args[1] if len(args) > 1 else None)
    else:
        return "This session provider does not support console sign-in."

    roles = RoleDirectory(state.store)
    route = await account.landing_route(IdentityResolver(sessions, state.store), roles, state.settings)
    state.navigator.redirect(route)
    return await open_route(state, route)


async def cmd_signup(state: AppState, args: list[str]) -> str:
    """
    /signup <user_id> [email]    (local backend)
    /signup <email> <password>   (rest backend)
    """
    sessions = state.sessions
    if isinstance(sessions, RestSessionProvider):
        if len(args) != 2:
            return "Usage: /signup <email> <password>"
        session = await sessions.sign_up(args[0], args[1])
        if session is None:
            return "Sign-up succeeded but no session is active. Confirm your email, then /login."
    elif isinstance(sessions, InMemorySessionProvider):
        if not args:
            return "Usage: /signup <user_id> [email]"
        session = await sessions.sign_in(args[0], args[1] if len(args) > 1 else None)
    else:
        return "This session provider does not support console sign-up."

    roles = RoleDirectory(state.store)
    await account.ensure_profile(state.store, roles, session.user_id, session.email)
    route = await account.landing_route(IdentityResolver(sessions, state.store), roles, state.settings)
    state.navigator.redirect(route)
    return await open_route(state, route)


async def cmd_logout(state: AppState, args: list[str]) -> str:
    await account.sign_out(state.sessions, state.navigator, state.settings.login_route)
    await close_view(state)
    return "Signed out."


async def cmd_whoami(state: AppState, args: list[str]) -> str:
    view = state.view
    if view is not None and view.context.identity is not None:
        ident = view.context.identity
        return f"{ident.email or ident.user_id} (role: {view.context.role_name or 'none'})"

    resolver = IdentityResolver(state.sessions, state.store)
    ident = await resolver.current_identity()
    if ident is None:
        return "Not signed in."
    role = "none"
    if ident.role_id is not None:
        role = await RoleDirectory(state.store).resolve_role_name(ident.role_id)
    return f"{ident.email or ident.user_id} (role: {role})"


async def cmd_check(state: AppState, args: list[str]) -> str:
    return await account.check_backend(state.sessions)


async def cmd_open(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /open admin | /open dashboard"
    return await _open(state, args[0].lower())


async def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks                              -> current filter
    /tasks reload                       -> refetch from the store
    /tasks assignee=.. deadline=.. status=..
    /tasks reset                        -> clear filters
    """
    view = _require_view(state)
    if args and args[0].lower() == "reload":
        await view.cache.load(view.spec.scope)
    elif args and args[0].lower() == "reset":
        view.filter = parse_filter([])
    elif args:
        words = []
        for a in args:
            key, sep, value = a.partition("=")
            if sep and key.lower() == "status" and value.lower() != "all":
                a = f"status={_resolve_status(view, value)}"
            elif sep and key.lower() == "assignee" and value.lower() not in ("all", "unassigned"):
                a = f"assignee={_resolve_user(view, value)}"
            words.append(a)
        view.filter = parse_filter(words)
    return view.render()


async def cmd_statuses(state: AppState, args: list[str]) -> str:
    view = _require_view(state)
    return "Statuses:\n" + "\n".join(f"  {s.id}. {s.name}" for s in view.statuses)


async def cmd_users(state: AppState, args: list[str]) -> str:
    view = _require_view(state, admin=True)
    if not view.assignable:
        return "No assignable users."
    return "Assignable users:\n" + "\n".join(f"  {p.id}  {p.email or ''}" for p in view.assignable)


async def cmd_new(state: AppState, args: list[str]) -> str:
    view = _require_view(state, admin=True)
    state.draft = parse_draft(view, args)
    return await _submit_draft(state, view, state.draft)


async def cmd_retry(state: AppState, args: list[str]) -> str:
    view = _require_view(state, admin=True)
    if state.draft is None:
        return "Nothing to retry."
    return await _submit_draft(state, view, state.draft)


async def _submit_draft(state: AppState, view: TaskView, draft: TaskDraft) -> str:
    task = await view.cache.create(draft, assignable_ids=view.assignable_ids)
    state.draft = None
    return f"Created {view.format_task(task)}"


async def cmd_status(state: AppState, args: list[str]) -> str:
    view = _require_view(state)
    if len(args) != 2:
        return "Usage: /status <task_id> <status id or name>"
    task = await view.cache.update_status(
        _task_id(args[0]), _resolve_status(view, args[1]), statuses=view.statuses
    )
    return f"Updated {view.format_task(task)}"


async def cmd_assign(state: AppState, args: list[str]) -> str:
    view = _require_view(state, admin=True)
    if len(args) != 2:
        return "Usage: /assign <task_id> <user id, email or none>"
    task = await view.cache.update_assignee(
        _task_id(args[0]), _resolve_user(view, args[1]), assignable_ids=view.assignable_ids
    )
    return f"Updated {view.format_task(task)}"


async def cmd_delete(state: AppState, args: list[str]) -> str:
    view = _require_view(state, admin=True)
    if len(args) != 1:
        return "Usage: /delete <task_id>"
    task_id = _task_id(args[0])

    async def confirm(task) -> bool:
        return await state.confirm(f"Delete task #{task.id} '{task.title}'?")

    if not await view.cache.remove(task_id, confirm=confirm):
        return "Delete cancelled."
    return f"Deleted task #{task_id}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("login", cmd_login, help_text="Sign in: /login <user_id|email> [email|password].")
registry.register("signup", cmd_signup, help_text="Create an account and its profile.")
registry.register("logout", cmd_logout, help_text="Sign out and go back to the login page.")
registry.register("whoami", cmd_whoami, help_text="Show the signed-in email and role.")
registry.register("check", cmd_check, help_text="Check that the backend is reachable.")
registry.register("open", cmd_open, help_text="Open a view: /open admin | /open dashboard.")
registry.register(
    "tasks", cmd_tasks, help_text="List tasks: /tasks [reload|reset|assignee=.. deadline=.. status=..]."
)
registry.register("statuses", cmd_statuses, help_text="List task statuses.")
registry.register("users", cmd_users, help_text="List users that can be assigned tasks (admin).")
registry.register(
    "new", cmd_new, help_text="Create a task: /new <title> | status=.. assignee=.. deadline=.. (admin)."
)
registry.register("retry", cmd_retry, help_text="Resubmit the last failed /new (admin).")
registry.register("status", cmd_status, help_text="Change a task's status: /status <task> <status>.")
registry.register("assign", cmd_assign, help_text="Assign a task: /assign <task> <user|none> (admin).")
registry.register("delete", cmd_delete, help_text="Delete a task after confirmation (admin).")
