"""Authenticated HTTP transport for JMAP, built on httpx."""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from jmapmail.jmap.errors import ApiError, AuthError, DecodeError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


def basic_auth_header(username: str, password: str) -> str:
    """Return the ``Authorization`` value for HTTP Basic auth."""
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def _raise_for_status(response: httpx.Response, what: str) -> None:
    if response.status_code == 401:
        raise AuthError()
    if not response.is_success:
        raise ApiError(f"{what} failed with status {response.status_code}", status=response.status_code)


class Transport:
    """Sends authenticated JSON requests and opens event streams.

    Owns one ``httpx.AsyncClient``; call ``aclose()`` (or let the owning
    JmapClient do it) when the session ends.
    """

    def __init__(
        self,
        auth_header: str,
        http: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._auth_header = auth_header
        self._timeout = timeout
        self._http = http or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @property
    def auth_header(self) -> str:
        return self._auth_header

    @property
    def closed(self) -> bool:
        return self._http.is_closed

    async def aclose(self) -> None:
        await self._http.aclose()

    def _ensure_open(self, what: str) -> None:
        # httpx raises a bare RuntimeError on a closed client
        if self._http.is_closed:
            raise TransportError(f"{what} failed: the session has been closed")

    async def get_json(self, url: str) -> Any:
        """GET ``url`` and return the decoded JSON body."""
        logger.debug("HTTP → GET %s", url)
        self._ensure_open(f"GET {url}")
        try:
            response = await self._http.get(url, headers={"Authorization": self._auth_header})
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc
        _raise_for_status(response, f"GET {url}")
        return self._decode(response)

    async def post_json(self, url: str, body: dict[str, Any]) -> Any:
        """POST ``body`` as JSON to ``url`` and return the decoded JSON body."""
        logger.debug("HTTP → POST %s (%d method calls)", url, len(body.get("methodCalls", [])))
        self._ensure_open(f"POST {url}")
        try:
            response = await self._http.post(
                url,
                json=body,
                headers={
                    "Authorization": self._auth_header,
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {url} failed: {exc}") from exc
        _raise_for_status(response, f"POST {url}")
        return self._decode(response)

    @asynccontextmanager
    async def event_stream(
        self, url: str, read_timeout: float | None = None
    ) -> AsyncIterator[AsyncIterator[str]]:
        """Open an SSE stream and yield an iterator of decoded text chunks.

        Chunks arrive as the server flushes them; they are not aligned to
        lines.  ``read_timeout`` bounds the silence between chunks (the
        server pings periodically), ``None`` waits forever.
        """
        self._ensure_open("Event stream")
        timeout = httpx.Timeout(self._timeout, read=read_timeout)
        async with self._http.stream(
            "GET",
            url,
            headers={"Authorization": self._auth_header, "Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            _raise_for_status(response, "Event stream")
            yield response.aiter_text()

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"Response body is not valid JSON: {exc}") from exc
