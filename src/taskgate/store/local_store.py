# src/taskgate/store/local_store.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.errors import StoreError
from ..core.ports import Filters, Order, Record

logger = logging.getLogger(__name__)

# collection -> columns the store will read/write (everything else is rejected).
COLUMNS: dict[str, tuple[str, ...]] = {
    "roles": ("id", "name"),
    "statuses": ("id", "name"),
    "profiles": ("id", "email", "role_id"),
    "tasks": (
        "id",
        "title",
        "description",
        "deadline",
        "status_id",
        "assignee_id",
        "created_by",
        "created_at",
    ),
}

SEED_ROLES = ((1, "user"), (2, "admin"))
SEED_STATUSES = ((1, "todo"), (2, "in_progress"), (3, "done"))


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LocalStore:
    """
    SQLite implementation of the RemoteStore port.

    Stands in for the hosted platform in offline/demo runs and in tests.
    The schema is simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing task columns
    - add columns with ALTER TABLE only when needed

    Each call opens its own SQLite connection and runs in a worker thread,
    so the event loop never blocks on disk.
    """

    def __init__(self, db_path: str | Path = "taskgate.sqlite3", *, admin_ids: Iterable[str] = ()) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        self._seed(list(admin_ids))
        logger.info("LocalStore ready db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("CREATE TABLE IF NOT EXISTS roles (id INTEGER PRIMARY KEY, name TEXT NOT NULL UNIQUE)")
            cur.execute("CREATE TABLE IF NOT EXISTS statuses (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    role_id INTEGER REFERENCES roles(id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    deadline TEXT,
                    status_id INTEGER NOT NULL REFERENCES statuses(id),
                    assignee_id TEXT REFERENCES profiles(id),
                    created_by TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )

            # Migrations (safe): add missing task columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("LocalStore migration: added column %s", name)

            add_col("description", "TEXT")
            add_col("deadline", "TEXT")
            add_col("assignee_id", "TEXT")
            add_col("created_by", "TEXT")
            add_col("created_at", "TEXT NOT NULL DEFAULT ''")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_created ON tasks(created_at, id)")
            conn.commit()
        finally:
            conn.close()

    def _seed(self, admin_ids: list[str]) -> None:
        conn = self._get_conn()
        try:
            conn.executemany("INSERT OR IGNORE INTO roles(id, name) VALUES (?, ?)", SEED_ROLES)
            conn.executemany("INSERT OR IGNORE INTO statuses(id, name) VALUES (?, ?)", SEED_STATUSES)
            admin_role = dict((name, rid) for rid, name in SEED_ROLES)["admin"]
            for admin_id in admin_ids:
                conn.execute(
                    "INSERT OR IGNORE INTO profiles(id, email, role_id) VALUES (?, ?, ?)",
                    (admin_id, admin_id if "@" in admin_id else None, admin_role),
                )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _check(collection: str, names: Iterable[str]) -> tuple[str, ...]:
        allowed = COLUMNS.get(collection)
        if allowed is None:
            raise StoreError(f"Unknown collection: {collection}")
        names = tuple(names)
        bad = [n for n in names if n not in allowed]
        if bad:
            raise StoreError(f"Unknown column(s) for {collection}: {', '.join(bad)}")
        return names

    @staticmethod
    def _where(filters: Filters) -> tuple[str, list[Any]]:
        parts: list[str] = []
        params: list[Any] = []
        for column, value in filters.items():
            if value is None:
                parts.append(f"{column} IS NULL")
            else:
                parts.append(f"{column} = ?")
                params.append(value)
        return (" WHERE " + " AND ".join(parts)) if parts else "", params

    def _fetch_by_id(self, conn: sqlite3.Connection, collection: str, record_id: Any) -> Record | None:
        row = conn.execute(f"SELECT * FROM {collection} WHERE id = ?", (record_id,)).fetchone()
        return dict(row) if row is not None else None

    # ---- sync implementations ----

    def _select(self, collection: str, filters: Filters | None, order: Order | None) -> list[Record]:
        filters = filters or {}
        self._check(collection, filters.keys())
        order_cols = self._check(collection, (c for c, _ in order or ()))
        where, params = self._where(filters)
        sql = f"SELECT * FROM {collection}{where}"
        if order_cols:
            desc = [d for _, d in order or ()]
            sql += " ORDER BY " + ", ".join(
                f"{c} {'DESC' if d else 'ASC'}" for c, d in zip(order_cols, desc)
            )
        conn = self._get_conn()
        try:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def _insert(self, collection: str, record: Record) -> Record:
        record = dict(record)
        if collection == "tasks":
            record.setdefault("created_at", _utc_now_iso())
        cols = self._check(collection, record.keys())
        placeholders = ", ".join("?" for _ in cols)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"INSERT INTO {collection}({', '.join(cols)}) VALUES ({placeholders})",
                [record[c] for c in cols],
            )
            conn.commit()
            record_id = record.get("id", cur.lastrowid)
            row = self._fetch_by_id(conn, collection, record_id)
            if row is None:
                raise StoreError(f"insert into {collection}: row vanished")
            logger.debug("Inserted %s id=%s", collection, record_id)
            return row
        finally:
            conn.close()

    def _update(self, collection: str, record_id: Any, patch: Record) -> Record:
        cols = self._check(collection, patch.keys())
        if "id" in cols:
            raise StoreError("id cannot be changed")
        conn = self._get_conn()
        try:
            if cols:
                assignments = ", ".join(f"{c} = ?" for c in cols)
                conn.execute(
                    f"UPDATE {collection} SET {assignments} WHERE id = ?",
                    [*(patch[c] for c in cols), record_id],
                )
                conn.commit()
            row = self._fetch_by_id(conn, collection, record_id)
            if row is None:
                raise StoreError(f"update {collection}: no row with id={record_id}")
            return row
        finally:
            conn.close()

    def _delete(self, collection: str, record_id: Any) -> None:
        self._check(collection, ())
        conn = self._get_conn()
        try:
            cur = conn.execute(f"DELETE FROM {collection} WHERE id = ?", (record_id,))
            conn.commit()
            if cur.rowcount != 1:
                raise StoreError(f"delete {collection}: no row with id={record_id}")
        finally:
            conn.close()

    async def _run(self, fn, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            logger.warning("LocalStore %s failed: %s", fn.__name__, e)
            raise StoreError(str(e)) from e

    # ---- RemoteStore ----

    async def select(
            self,
            collection: str,
            filters: Filters | None = None,
            order: Order | None = None,
    ) -> list[Record]:
        return await self._run(self._select, collection, filters, order)

    async def insert(self, collection: str, record: Record) -> Record:
        return await self._run(self._insert, collection, record)

    async def update(self, collection: str, record_id: Any, patch: Record) -> Record:
        return await self._run(self._update, collection, record_id, patch)

    async def delete(self, collection: str, record_id: Any) -> None:
        await self._run(self._delete, collection, record_id)
