"""Shared pytest fixtures — a fake JMAP server on top of httpx.MockTransport."""

import copy
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from jmapmail.jmap.client import JmapClient
from jmapmail.jmap.session import connect

SERVER_URL = "https://jmap.example.com"
API_URL = f"{SERVER_URL}/api/"
EVENTS_URL = f"{SERVER_URL}/events/"

SESSION_JSON: dict[str, Any] = {
    "capabilities": {
        "urn:ietf:params:jmap:core": {"maxCallsInRequest": 16},
        "urn:ietf:params:jmap:mail": {},
        "urn:ietf:params:jmap:submission": {},
    },
    "accounts": {
        "a1": {"name": "alice@example.com", "isPersonal": True, "isReadOnly": False},
        "shared": {"name": "team@example.com", "isPersonal": False, "isReadOnly": True},
    },
    "primaryAccounts": {
        "urn:ietf:params:jmap:mail": "a1",
        "urn:ietf:params:jmap:submission": "a1",
    },
    "username": "alice@example.com",
    "apiUrl": API_URL,
    "downloadUrl": f"{SERVER_URL}/download/{{accountId}}/{{blobId}}/{{name}}?type={{type}}",
    "uploadUrl": f"{SERVER_URL}/upload/{{accountId}}/",
    "eventSourceUrl": EVENTS_URL + "?types={types}&closeafter={closeafter}&ping={ping}",
    "state": "sess-1",
}

#: Builds methodResponses from the decoded request body.
Responder = Callable[[dict[str, Any]], list[list[Any]]]


class FakeJmapServer:
    """Answers discovery, API and event-source requests for one account.

    API replies are queued with ``reply()``; each entry is either a literal
    methodResponses list or a callable receiving the decoded request body.
    """

    def __init__(self, session_json: dict[str, Any]) -> None:
        self.session_json = session_json
        self.session_status = 200
        self.api_status = 200
        self.requests: list[httpx.Request] = []
        self.api_bodies: list[dict[str, Any]] = []
        self._replies: list[list[list[Any]] | Responder] = []
        self.event_handler: Callable[[httpx.Request], httpx.Response] | None = None

    def reply(self, reply: list[list[Any]] | Responder) -> None:
        self._replies.append(reply)

    @property
    def last_body(self) -> dict[str, Any]:
        return self.api_bodies[-1]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/.well-known/jmap":
            if self.session_status != 200:
                return httpx.Response(self.session_status)
            return httpx.Response(200, json=self.session_json)
        if path == "/api/":
            if self.api_status != 200:
                return httpx.Response(self.api_status)
            body = json.loads(request.content)
            self.api_bodies.append(body)
            reply = self._replies.pop(0)
            responses = reply(body) if callable(reply) else reply
            return httpx.Response(200, json={"methodResponses": responses, "sessionState": "sess-1"})
        if path == "/events/" and self.event_handler is not None:
            return self.event_handler(request)
        return httpx.Response(404)


@pytest.fixture
def session_json() -> dict[str, Any]:
    return copy.deepcopy(SESSION_JSON)


@pytest.fixture
def server(session_json: dict[str, Any]) -> FakeJmapServer:
    return FakeJmapServer(session_json)


@pytest.fixture
def http(server: FakeJmapServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(server))


@pytest.fixture
async def client(http: httpx.AsyncClient) -> AsyncIterator[JmapClient]:
    c = await connect(SERVER_URL, "alice@example.com", "secret", http=http)
    yield c
    await c.aclose()
