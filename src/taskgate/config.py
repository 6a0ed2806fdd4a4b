# src/taskgate/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, passed down explicitly.
- No secrets required at import time.
- Task creation rules are policy, not code: both variants are configurable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKGATE"

BACKENDS = ("local", "rest")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Backend ----
    backend: str
    data_dir: Path
    local_db_path: Path
    local_admins: list[str]
    api_url: str
    api_key: str | None
    http_timeout_seconds: float

    # ---- Routes ----
    login_route: str
    dashboard_route: str
    admin_route: str
    fallback_route: str

    # ---- Task creation policy ----
    require_status_on_create: bool
    require_assignee_on_create: bool
    default_status_id: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskgate").strip() or "taskgate"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        backend = _env(_k("BACKEND"), "local").strip().lower()
        if backend not in BACKENDS:
            backend = "local"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskgate"))
        local_db_path = _env_path(_k("LOCAL_DB_PATH"), data_dir / "taskgate.sqlite3")

        api_url = _env(_k("API_URL"), "").strip().rstrip("/")
        api_key = _env(_k("API_KEY"), "").strip() or None
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0)

        dashboard_route = _env(_k("DASHBOARD_ROUTE"), "/dashboard")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            backend=backend,
            data_dir=data_dir,
            local_db_path=local_db_path,
            local_admins=_env_list(_k("LOCAL_ADMINS"), []),
            api_url=api_url,
            api_key=api_key,
            http_timeout_seconds=max(1.0, http_timeout_seconds),
            login_route=_env(_k("LOGIN_ROUTE"), "/login"),
            dashboard_route=dashboard_route,
            admin_route=_env(_k("ADMIN_ROUTE"), "/admin"),
            # Unauthorized users land somewhere safe that is not the login page.
            fallback_route=_env(_k("FALLBACK_ROUTE"), dashboard_route),
            require_status_on_create=_env_bool(_k("REQUIRE_STATUS_ON_CREATE"), False),
            require_assignee_on_create=_env_bool(_k("REQUIRE_ASSIGNEE_ON_CREATE"), True),
            default_status_id=_env_int(_k("DEFAULT_STATUS_ID"), 1),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
