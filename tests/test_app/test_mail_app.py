"""Tests for MailApp — login/resume/logout lifecycle and send."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from conftest import SERVER_URL, FakeJmapServer
from jmapmail.app.config import ClientConfig
from jmapmail.app.credentials import Credentials, MemoryCredentialStore
from jmapmail.app.mail_app import MailApp
from jmapmail.jmap.client import JmapClient
from jmapmail.jmap.errors import AuthError, JmapError
from jmapmail.jmap.types import StateChange
from jmapmail.push.synchronizer import SyncState

MAILBOXES = [
    {"id": "mb-inbox", "name": "Inbox", "role": "inbox"},
    {"id": "mb-drafts", "name": "Drafts", "role": "drafts"},
    {"id": "mb-sent", "name": "Sent", "role": "sent"},
]
IDENTITIES = [{"id": "id1", "name": "Alice", "email": "alice@example.com"}]


def _queue_login(server: FakeJmapServer, mailboxes: list[dict[str, Any]] = MAILBOXES) -> None:
    server.reply([["Mailbox/get", {"state": "mst-1", "list": mailboxes}, "m0"]])
    server.reply([["Identity/get", {"list": IDENTITIES}, "i0"]])


@pytest.fixture
def creds() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def connect_mock(client: JmapClient) -> Any:
    with patch("jmapmail.app.mail_app.connect", AsyncMock(return_value=client)) as mock:
        yield mock


# ── Lifecycle ─────────────────────────────────────────────────────────────────


class TestLogin:
    async def test_loads_mailboxes_and_identities(
        self, server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any
    ) -> None:
        _queue_login(server)
        app = MailApp(creds, ClientConfig(http_timeout=5.0))
        await app.login(SERVER_URL, "alice@example.com", "secret", push=False)

        connect_mock.assert_awaited_once_with(SERVER_URL, "alice@example.com", "secret", timeout=5.0)
        assert app.logged_in
        assert app.store is not None
        assert [m.id for m in app.store.mailboxes] == ["mb-inbox", "mb-drafts", "mb-sent"]
        assert app.store.mailbox_state == "mst-1"
        assert [i.id for i in app.identities] == ["id1"]
        assert creds.load() == Credentials(SERVER_URL, "alice@example.com", "secret")
        await app.logout()

    async def test_connect_failure_propagates(self, creds: MemoryCredentialStore) -> None:
        app = MailApp(creds)
        with patch("jmapmail.app.mail_app.connect", AsyncMock(side_effect=AuthError())):
            with pytest.raises(AuthError):
                await app.login(SERVER_URL, "alice@example.com", "wrong", push=False)
        assert not app.logged_in
        assert creds.load() is None

    async def test_mailbox_failure_leaves_empty_list(
        self, server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any
    ) -> None:
        server.reply([["error", {"type": "serverFail"}, "m0"]])
        server.reply([["Identity/get", {"list": IDENTITIES}, "i0"]])
        app = MailApp(creds)
        await app.login(SERVER_URL, "alice@example.com", "secret", push=False)
        assert app.store is not None and app.store.mailboxes == []
        assert len(app.identities) == 1
        await app.logout()

    async def test_push_started_and_stopped(
        self, server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any
    ) -> None:
        _queue_login(server)
        app = MailApp(creds, ClientConfig(reconnect_delay=60))
        await app.login(SERVER_URL, "alice@example.com", "secret")
        sync = app.synchronizer
        assert sync is not None
        await asyncio.sleep(0)
        await asyncio.wait_for(app.logout(), 2.0)
        assert sync.state is SyncState.DISCONNECTED
        assert app.synchronizer is None


class TestResume:
    async def test_no_saved_credentials(self, creds: MemoryCredentialStore) -> None:
        assert await MailApp(creds).resume() is False

    async def test_resume_from_saved(
        self, server: FakeJmapServer, connect_mock: Any
    ) -> None:
        _queue_login(server)
        creds = MemoryCredentialStore(Credentials(SERVER_URL, "alice@example.com", "secret"))
        app = MailApp(creds)
        assert await app.resume(push=False) is True
        assert app.logged_in
        await app.logout()

    async def test_failed_resume_returns_false(self) -> None:
        creds = MemoryCredentialStore(Credentials(SERVER_URL, "alice@example.com", "stale"))
        app = MailApp(creds)
        with patch("jmapmail.app.mail_app.connect", AsyncMock(side_effect=AuthError())):
            assert await app.resume(push=False) is False
        assert not app.logged_in


class TestLogout:
    async def test_clears_everything(
        self, server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any, client: JmapClient
    ) -> None:
        _queue_login(server)
        app = MailApp(creds)
        await app.login(SERVER_URL, "alice@example.com", "secret", push=False)
        store = app.store
        await app.logout()

        assert not app.logged_in
        assert app.store is None and app.identities == []
        assert store is not None and store.closed
        assert creds.load() is None
        assert client.transport._http.is_closed

    async def test_cancels_queued_mailbox_refresh(
        self, server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any
    ) -> None:
        _queue_login(server)
        app = MailApp(creds)
        await app.login(SERVER_URL, "alice@example.com", "secret", push=False)
        store = app.store
        assert store is not None
        store.handle_state_change(StateChange(changed={"a1": {"Mailbox": "mst-2"}}))
        pending = list(store._pending)
        assert pending

        await app.logout()

        assert all(task.done() for task in pending)
        results = await asyncio.gather(*pending, return_exceptions=True)
        assert not any(isinstance(r, RuntimeError) for r in results)
        assert store.mailboxes[0].id == "mb-inbox"

    async def test_keep_credentials(
        self, server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any
    ) -> None:
        _queue_login(server)
        app = MailApp(creds)
        await app.login(SERVER_URL, "alice@example.com", "secret", push=False)
        await app.logout(clear_credentials=False)
        assert creds.load() is not None

    async def test_logout_when_logged_out_is_noop(self, creds: MemoryCredentialStore) -> None:
        await MailApp(creds).logout()


# ── Views ─────────────────────────────────────────────────────────────────────


@pytest.fixture
async def app(server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any) -> Any:
    _queue_login(server)
    app = MailApp(creds, ClientConfig(page_size=2))
    await app.login(SERVER_URL, "alice@example.com", "secret", push=False)
    yield app
    await app.logout()


class TestLoadPage:
    async def test_query_then_get(self, app: MailApp, server: FakeJmapServer) -> None:
        server.reply([["Email/query", {"ids": ["e1", "e2"], "total": 5, "position": 0}, "q0"]])
        server.reply([["Email/get", {"state": "es-1", "list": [{"id": "e1"}, {"id": "e2"}]}, "e0"]])
        emails, page = await app.load_page("mb-inbox")
        assert [e.id for e in emails] == ["e1", "e2"]
        assert page.has_more
        assert server.api_bodies[-2]["methodCalls"][0][1]["limit"] == 2
        assert app.store is not None and app.store.email_state == "es-1"

    async def test_empty_page_skips_get(self, app: MailApp, server: FakeJmapServer) -> None:
        server.reply([["Email/query", {"ids": [], "total": 0, "position": 0}, "q0"]])
        before = len(server.api_bodies)
        emails, page = await app.load_page("mb-inbox")
        assert emails == [] and page.total == 0
        assert len(server.api_bodies) == before + 1

    async def test_requires_login(self, creds: MemoryCredentialStore) -> None:
        with pytest.raises(JmapError, match="Not connected"):
            await MailApp(creds).load_page("mb-inbox")


class TestSend:
    async def test_uses_first_identity_and_roles(self, app: MailApp, server: FakeJmapServer) -> None:
        server.reply([
            ["Email/set", {"created": {"emailToSend": {"id": "m1"}}}, "s0"],
            ["EmailSubmission/set", {"created": {"sub0": {"id": "es1"}}}, "s1"],
        ])
        await app.send("bob@example.com, carol@example.com", "Hi", "Body", cc="dave@example.com")

        set_args = server.last_body["methodCalls"][0][1]
        draft = set_args["create"]["emailToSend"]
        assert draft["mailboxIds"] == {"mb-drafts": True}
        assert [a["email"] for a in draft["to"]] == ["bob@example.com", "carol@example.com"]
        assert [a["email"] for a in draft["cc"]] == ["dave@example.com"]
        assert draft["from"] == [{"name": "Alice", "email": "alice@example.com"}]
        sub_args = server.last_body["methodCalls"][1][1]
        assert sub_args["create"]["sub0"]["identityId"] == "id1"
        assert "mailboxIds/mb-sent" in sub_args["onSuccessUpdateEmail"]["#emailToSend"]

    async def test_missing_sent_mailbox(
        self, server: FakeJmapServer, creds: MemoryCredentialStore, connect_mock: Any
    ) -> None:
        _queue_login(server, MAILBOXES[:2])
        app = MailApp(creds)
        await app.login(SERVER_URL, "alice@example.com", "secret", push=False)
        with pytest.raises(JmapError, match="Drafts or Sent"):
            await app.send("bob@example.com", "Hi", "Body")
        await app.logout()

    async def test_no_identity(self, app: MailApp) -> None:
        app.identities = []
        with pytest.raises(JmapError, match="No identity"):
            await app.send("bob@example.com", "Hi", "Body")
