"""
Client side of the session protocol.

Every authenticated call goes through `SessionInterceptor`. On a 401 it makes
sure exactly one `POST /auth/refresh` is in flight for the client, lets every
other failed caller wait on that same refresh, and retries each original
request once with the new access token. If the refresh fails the local
session is dropped and `on_session_lost` is called (the app sends the user to
its login screen).
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

logger = logging.getLogger(__name__)

SessionLostCallback = Callable[[], Union[None, Awaitable[None]]]


class SessionLost(Exception):
    """The session could not be refreshed; the user has to log in again."""


class SessionState:
    """Mutable session data owned by one client.

    `access_token` is held in memory only. `pending_refresh` is the shared
    outcome of the refresh currently in flight, if any.
    """

    def __init__(self, access_token: Optional[str] = None):
        self.access_token = access_token
        self.pending_refresh: Optional[asyncio.Future] = None
        # Set by an explicit logout; a refresh cookie may still be live
        self.logged_out = False

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    @property
    def refresh_in_flight(self) -> bool:
        return self.pending_refresh is not None and not self.pending_refresh.done()

    def clear(self) -> None:
        self.access_token = None


class SessionInterceptor:
    def __init__(
        self,
        client: httpx.AsyncClient,
        state: Optional[SessionState] = None,
        refresh_path: str = "/auth/refresh",
        login_path: str = "/auth/login",
        logout_path: str = "/auth/logout",
        refresh_timeout: float = 10.0,
        on_session_lost: Optional[SessionLostCallback] = None
    ):
        self.client = client
        self.state = state or SessionState()
        self.refresh_path = refresh_path
        self.login_path = login_path
        self.logout_path = logout_path
        self.refresh_timeout = refresh_timeout
        self.on_session_lost = on_session_lost

    # -------------------------
    # Session lifecycle
    # -------------------------
    async def login(self, email: str, password: str) -> httpx.Response:
        response = await self.client.post(self.login_path, json={"email": email, "password": password})
        response.raise_for_status()
        self.state.access_token = response.json()["access_token"]
        self.state.logged_out = False
        return response

    async def logout(self) -> None:
        """Revoke the server session and forget the local one.

        The local session is dropped either way and is not refreshed again
        until the next `login`. A revoke the server could not confirm raises
        `httpx.HTTPStatusError`; calling `logout` again retries it.
        """
        try:
            response = await self.client.post(self.logout_path)
        finally:
            self.state.clear()
            self.state.logged_out = True
        response.raise_for_status()

    # -------------------------
    # Requests
    # -------------------------
    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._is_refresh_call(url):
            return await self.client.request(method, url, **kwargs)

        sent_with = self.state.access_token
        response = await self._send(method, url, sent_with, kwargs)
        if response.status_code != 401:
            return response

        await response.aclose()
        token = await self._fresh_token(sent_with)
        # Retried once; a second 401 goes back to the caller unchanged
        return await self._send(method, url, token, kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def _send(self, method: str, url: str, token: Optional[str], kwargs: dict) -> httpx.Response:
        headers = dict(kwargs.get("headers") or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self.client.request(method, url, **{**kwargs, "headers": headers})

    def _is_refresh_call(self, url: str) -> bool:
        return httpx.URL(url).path == self.refresh_path

    # -------------------------
    # Single-flight refresh
    # -------------------------
    async def _fresh_token(self, sent_with: Optional[str]) -> str:
        state = self.state
        if state.logged_out:
            raise SessionLost("Logged out")

        if state.access_token != sent_with:
            # The session changed while our request was out
            if state.access_token is None:
                raise SessionLost("Session was lost while the request was in flight")
            return state.access_token

        if state.pending_refresh is None:
            state.pending_refresh = asyncio.ensure_future(self._refresh())

        # shield: one caller giving up must not cancel the refresh for the rest
        return await asyncio.shield(state.pending_refresh)

    async def _refresh(self) -> str:
        try:
            response = await self.client.post(self.refresh_path, timeout=self.refresh_timeout)
            if response.status_code != 200:
                raise SessionLost(f"Refresh rejected with status {response.status_code}")
            token = response.json()["access_token"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            await self._drop_session(e)
            raise SessionLost("Refresh failed") from e
        except SessionLost as e:
            await self._drop_session(e)
            raise
        else:
            if self.state.logged_out:
                raise SessionLost("Logged out while the refresh was in flight")
            self.state.access_token = token
            return token
        finally:
            self.state.pending_refresh = None

    async def _drop_session(self, reason: Exception) -> None:
        logger.info(f"Session lost, redirecting to login: {reason}")
        self.state.clear()
        if self.on_session_lost is not None:
            result = self.on_session_lost()
            if asyncio.iscoroutine(result):
                await result
