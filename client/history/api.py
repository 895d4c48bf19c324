"""
History/auth backend client.

Thin pass-through over the PHP backend:
- POST /register.php        body: user profile (+ password)
- POST /login.php           body: {"username", "password"}
- POST /save_history.php    body: {"user_id", "item"}
- GET  /get_history.php?user_id=<id>

Responses are decoded JSON returned verbatim. No retries, no caching, no
interpretation of success flags; HTTP status codes are not checked because
the backend reports failures inside the JSON body.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any, Mapping

import aiohttp

from constants import (
    HISTORY_LIST_PATH,
    HISTORY_LOGIN_PATH,
    HISTORY_REGISTER_PATH,
    HISTORY_SAVE_PATH,
)
from observability.logger import log_event, now_ms


class HistoryClient:
    """
    Usage:
        async with HistoryClient(base_url) as history:
            user = await history.login({"username": "a", "password": "b"})
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def __aenter__(self) -> HistoryClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def register(self, user: Mapping[str, Any]) -> Any:
        return await self._post(HISTORY_REGISTER_PATH, dict(user))

    async def login(self, credentials: Mapping[str, Any]) -> Any:
        return await self._post(HISTORY_LOGIN_PATH, dict(credentials))

    async def save_history(self, user_id: int, item: Mapping[str, Any]) -> Any:
        return await self._post(HISTORY_SAVE_PATH, {"user_id": user_id, "item": dict(item)})

    async def get_history(self, user_id: int) -> Any:
        session = self._ensure_session()
        url = self._url(HISTORY_LIST_PATH)
        async with session.get(url, params={"user_id": str(user_id)}) as response:
            self._log_response("GET", HISTORY_LIST_PATH, response.status)
            return await response.json(content_type=None)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _post(self, path: str, body: dict[str, Any]) -> Any:
        session = self._ensure_session()
        async with session.post(self._url(path), json=body) as response:
            self._log_response("POST", path, response.status)
            return await response.json(content_type=None)

    @staticmethod
    def _log_response(method: str, path: str, status: int) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "HISTORY_REQUEST",
            "method": method,
            "path": path,
            "status": status,
        })
