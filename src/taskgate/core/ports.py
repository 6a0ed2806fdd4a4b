# src/taskgate/core/ports.py

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the backing platform (SQLite demo store, PostgREST/GoTrue over HTTP)
swappable and makes testing easier.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from .models import Session

Record = dict[str, Any]
# A filter is a mapping of column -> required value (equality match).
Filters = dict[str, Any]
# Order is a sequence of (column, descending) pairs, applied left to right.
Order = Sequence[tuple[str, bool]]

SessionCallback = Callable[[Session | None], None]
Unsubscribe = Callable[[], None]


class RemoteStore(Protocol):
    """
    Record-oriented request/response access to the backing data platform.

    Every call is fallible and network-latent; implementations raise
    StoreError with a descriptive message.
    """

    async def select(
            self,
            collection: str,
            filters: Filters | None = None,
            order: Order | None = None,
    ) -> list[Record]: ...

    async def insert(self, collection: str, record: Record) -> Record: ...

    async def update(self, collection: str, record_id: Any, patch: Record) -> Record: ...

    async def delete(self, collection: str, record_id: Any) -> None: ...


class SessionProvider(Protocol):
    """Opaque credential provider: who is signed in, and when that changes."""

    async def get_session(self) -> Session | None: ...

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe: ...

    async def sign_out(self) -> None: ...


class Navigator(Protocol):
    def redirect(self, route: str) -> None: ...
