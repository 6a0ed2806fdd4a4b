# src/taskgate/store/rest_store.py

"""
PostgREST-backed RemoteStore.

Talks to `<api_url>/rest/v1/<collection>` with httpx:
- equality filters as `column=eq.value`
- ordering as `order=col.desc,id.desc`
- writes ask for `Prefer: return=representation` so inserts/updates return
  the authoritative row (server-assigned id, defaults).

Every transport or HTTP failure is raised as StoreError; there are no
automatic retries here. Repeating the user action is the retry.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from ..core.errors import StoreError
from ..core.ports import Filters, Order, Record

logger = logging.getLogger(__name__)

TokenGetter = Callable[[], str | None]


def describe_http_error(exc: Exception) -> str:
    """Human-readable message for an httpx failure."""
    if isinstance(exc, httpx.HTTPStatusError):
        resp = exc.response
        detail = ""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = str(
                body.get("message")
                or body.get("error_description")
                or body.get("msg")
                or body.get("error")
                or ""
            )
        return f"HTTP {resp.status_code}{': ' + detail if detail else ''}"
    if isinstance(exc, httpx.TimeoutException):
        return "request timed out"
    if isinstance(exc, httpx.ConnectError):
        return "connection refused"
    return str(exc) or exc.__class__.__name__


def _encode(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RestStore:
    def __init__(
            self,
            api_url: str,
            api_key: str | None,
            *,
            token_getter: TokenGetter | None = None,
            timeout: float = 10.0,
            client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_url:
            raise ValueError("api_url is required for the REST store")
        self._base = f"{api_url.rstrip('/')}/rest/v1"
        self._api_key = api_key
        self._token_getter = token_getter
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---- low-level helpers ----

    def _headers(self, *, write: bool = False) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
        token = self._token_getter() if self._token_getter is not None else None
        bearer = token or self._api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        if write:
            headers["Prefer"] = "return=representation"
        return headers

    @staticmethod
    def _params(filters: Filters | None, order: Order | None = None) -> dict[str, str]:
        params: dict[str, str] = {}
        for column, value in (filters or {}).items():
            params[column] = f"is.{_encode(value)}" if value is None else f"eq.{_encode(value)}"
        if order:
            params["order"] = ",".join(f"{col}.{'desc' if desc else 'asc'}" for col, desc in order)
        return params

    async def _request(
            self,
            method: str,
            collection: str,
            *,
            params: dict[str, str] | None = None,
            json: Any = None,
            write: bool = False,
    ) -> Any:
        url = f"{self._base}/{collection}"
        try:
            resp = await self._client.request(
                method, url, params=params, json=json, headers=self._headers(write=write)
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            msg = describe_http_error(e)
            logger.warning("%s %s failed: %s", method, collection, msg)
            raise StoreError(f"{method} {collection}: {msg}") from e

        logger.debug("%s %s -> %s", method, collection, resp.status_code)
        if not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _single(rows: Any, what: str) -> Record:
        if isinstance(rows, list) and rows:
            return dict(rows[0])
        if isinstance(rows, dict):
            return rows
        raise StoreError(f"{what}: no row returned")

    # ---- RemoteStore ----

    async def select(
            self,
            collection: str,
            filters: Filters | None = None,
            order: Order | None = None,
    ) -> list[Record]:
        params = {"select": "*", **self._params(filters, order)}
        rows = await self._request("GET", collection, params=params)
        return [dict(r) for r in rows or []]

    async def insert(self, collection: str, record: Record) -> Record:
        rows = await self._request("POST", collection, json=record, write=True)
        return self._single(rows, f"insert into {collection}")

    async def update(self, collection: str, record_id: Any, patch: Record) -> Record:
        rows = await self._request(
            "PATCH", collection, params=self._params({"id": record_id}), json=patch, write=True
        )
        return self._single(rows, f"update {collection} id={record_id}")

    async def delete(self, collection: str, record_id: Any) -> None:
        await self._request("DELETE", collection, params=self._params({"id": record_id}))
