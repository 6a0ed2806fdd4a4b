# src/taskgate/auth/sessions.py

from __future__ import annotations

import logging

import httpx

from ..core.errors import StoreError
from ..core.models import Session
from ..core.ports import SessionCallback, Unsubscribe
from ..store.rest_store import describe_http_error

logger = logging.getLogger(__name__)


class _SessionNotifier:
    """Holds the current session and fans out change notifications."""

    def __init__(self) -> None:
        self._session: Session | None = None
        self._listeners: list[SessionCallback] = []

    async def get_session(self) -> Session | None:
        return self._session

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_session(self, session: Session | None) -> None:
        self._session = session
        for cb in list(self._listeners):
            try:
                cb(session)
            except Exception:
                logger.exception("Session listener failed")


class InMemorySessionProvider(_SessionNotifier):
    """
    Session provider for the local backend.

    Credentials are not checked: the local store is a demo/offline stand-in
    for the hosted platform, and `sign_in` simply adopts the identity.
    """

    async def sign_in(self, user_id: str, email: str | None = None) -> Session:
        session = Session(user_id=user_id, email=email)
        logger.info("Signed in user=%s", user_id)
        self._set_session(session)
        return session

    async def sign_out(self) -> None:
        if self._session is not None:
            logger.info("Signed out user=%s", self._session.user_id)
        self._set_session(None)


class RestSessionProvider(_SessionNotifier):
    """GoTrue-style auth over httpx: password sign-in, sign-up, logout."""

    def __init__(
            self,
            api_url: str,
            api_key: str | None,
            *,
            timeout: float = 10.0,
            client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        if not api_url:
            raise ValueError("api_url is required for REST sessions")
        self._base = f"{api_url.rstrip('/')}/auth/v1"
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session is not None else None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _post(self, path: str, *, json: dict | None = None, params: dict | None = None,
                    token: str | None = None) -> dict:
        try:
            resp = await self._client.post(
                f"{self._base}/{path}", json=json, params=params, headers=self._headers(token)
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise StoreError(f"auth/{path}: {describe_http_error(e)}") from e
        if not resp.content:
            return {}
        body = resp.json()
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _session_from(body: dict) -> Session | None:
        token = body.get("access_token")
        user = body.get("user") or {}
        if not token or not user.get("id"):
            return None
        return Session(user_id=str(user["id"]), email=user.get("email"), access_token=str(token))

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        body = await self._post(
            "token", params={"grant_type": "password"}, json={"email": email, "password": password}
        )
        session = self._session_from(body)
        if session is None:
            raise StoreError("Sign-in succeeded but no session was returned")
        logger.info("Signed in user=%s", session.user_id)
        self._set_session(session)
        return session

    async def sign_up(self, email: str, password: str) -> Session | None:
        """Returns None when the platform requires email confirmation first."""
        body = await self._post("signup", json={"email": email, "password": password})
        session = self._session_from(body)
        if session is not None:
            self._set_session(session)
        return session

    async def sign_out(self) -> None:
        token = self.access_token
        # Local sign-out always happens; the server call only revokes the token.
        self._set_session(None)
        if token:
            await self._post("logout", token=token)
