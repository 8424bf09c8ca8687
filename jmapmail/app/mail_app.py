"""MailApp — login/resume/logout lifecycle tying client, store and push together."""

from __future__ import annotations

import asyncio
import logging

from jmapmail.app.config import ClientConfig
from jmapmail.app.credentials import CredentialStore, Credentials
from jmapmail.jmap.client import JmapClient
from jmapmail.jmap.compose import parse_addresses
from jmapmail.jmap.errors import JmapError
from jmapmail.jmap.session import connect
from jmapmail.jmap.types import Email, EmailPage, Identity
from jmapmail.push.synchronizer import PushSynchronizer
from jmapmail.sync.store import StateStore

logger = logging.getLogger(__name__)


class MailApp:
    """Owns the current session for a consuming UI or CLI.

    At most one client is live at a time.  Logging in again or logging out
    tears the previous one down; nothing mutates a client in place.

    Usage::

        app = MailApp(EnvCredentialStore())
        if not await app.resume():
            await app.login(server, user, password)
        ...
        await app.logout()
    """

    def __init__(self, credentials: CredentialStore, config: ClientConfig | None = None) -> None:
        self._credentials = credentials
        self._config = config or ClientConfig()
        self._client: JmapClient | None = None
        self._store: StateStore | None = None
        self._sync: PushSynchronizer | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self.identities: list[Identity] = []

    @property
    def client(self) -> JmapClient | None:
        return self._client

    @property
    def store(self) -> StateStore | None:
        return self._store

    @property
    def synchronizer(self) -> PushSynchronizer | None:
        return self._sync

    @property
    def logged_in(self) -> bool:
        return self._client is not None

    def _require_client(self) -> JmapClient:
        if self._client is None:
            raise JmapError("Not connected")
        return self._client

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def login(self, server: str, username: str, password: str, *, push: bool = True) -> None:
        """Connect, load mailboxes and identities, persist credentials, start push.

        Connection failures propagate unchanged (AuthError, NoAccount, ...).
        Failing to load mailboxes or identities is logged and leaves them empty.
        """
        client = await connect(server, username, password, timeout=self._config.http_timeout)
        if self._client is not None:
            await self.logout(clear_credentials=False)

        store = StateStore(client)
        try:
            mailboxes, state = await client.get_mailboxes()
            store.set_mailboxes(mailboxes, state)
        except JmapError as exc:
            logger.warning("Could not load mailboxes: %s", exc)
        try:
            self.identities = await client.get_identities()
        except JmapError as exc:
            logger.warning("Could not load identities: %s", exc)
            self.identities = []

        self._client = client
        self._store = store
        self._credentials.save(Credentials(server, username, password))
        logger.info("Logged in as %s", username)
        if push:
            self.start_push()

    async def resume(self, *, push: bool = True) -> bool:
        """Log in from stored credentials.  Returns False if none or if connect fails."""
        saved = self._credentials.load()
        if saved is None:
            return False
        try:
            await self.login(saved.server, saved.username, saved.password, push=push)
        except JmapError as exc:
            logger.warning("Auto-login failed: %s", exc)
            return False
        return True

    def start_push(self) -> None:
        client = self._require_client()
        if self._sync_task is not None and not self._sync_task.done():
            return
        assert self._store is not None
        self._sync = PushSynchronizer(
            client,
            self._store.handle_state_change,
            reconnect_delay=self._config.reconnect_delay,
            ping_interval=self._config.ping_interval,
        )
        self._sync_task = asyncio.create_task(self._sync.run(), name="jmap-push")

    async def logout(self, *, clear_credentials: bool = True) -> None:
        """Stop push, detach the store, forget credentials and close the client."""
        if self._sync is not None:
            self._sync.stop()
        if self._sync_task is not None:
            await self._sync_task
        if self._store is not None:
            self._store.close()
            await self._store.wait_pending()
        if clear_credentials:
            self._credentials.clear()
        client = self._client
        self._client = None
        self._store = None
        self._sync = None
        self._sync_task = None
        self.identities = []
        if client is not None:
            await client.aclose()
            logger.info("Logged out")

    # ── Operations used by views ───────────────────────────────────────────────

    async def load_page(self, mailbox_id: str, position: int = 0) -> tuple[list[Email], EmailPage]:
        """Query one page of a mailbox and fetch its summary rows."""
        client = self._require_client()
        page = await client.query_emails(mailbox_id, position, self._config.page_size)
        if not page.ids:
            return [], page
        emails, state = await client.get_emails(page.ids)
        if self._store is not None and not self._store.closed:
            self._store.email_state = state
        return emails, page

    async def send(
        self, to: str, subject: str, body: str, cc: str = "", bcc: str = ""
    ) -> None:
        """Send from the first identity, filing Drafts → Sent by mailbox role."""
        client = self._require_client()
        if not self.identities:
            raise JmapError("No identity found")
        identity = self.identities[0]
        mailboxes = self._store.mailboxes if self._store is not None else []
        drafts = client.find_mailbox_by_role(mailboxes, "drafts")
        sent = client.find_mailbox_by_role(mailboxes, "sent")
        if drafts is None or sent is None:
            raise JmapError("Drafts or Sent mailbox not found")
        await client.send_email(
            identity.id,
            from_=[identity.address()],
            to=parse_addresses(to),
            cc=parse_addresses(cc),
            bcc=parse_addresses(bcc),
            subject=subject,
            body=body,
            drafts_mailbox_id=drafts.id,
            sent_mailbox_id=sent.id,
        )
