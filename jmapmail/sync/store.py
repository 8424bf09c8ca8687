"""StateStore — turns push notifications into refetches and staleness signals."""

import asyncio
import logging
from collections.abc import Callable

from jmapmail.jmap.client import JmapClient
from jmapmail.jmap.errors import JmapError
from jmapmail.jmap.types import Mailbox, StateChange

logger = logging.getLogger(__name__)

MAILBOX_TYPE = "Mailbox"
EMAIL_TYPE = "Email"

#: Receives the new refresh counter value after an Email change.
RefreshListener = Callable[[int], None]


class StateStore:
    """Shared view state kept current by the push channel.

    Only changes for the client's own account are considered.  A Mailbox
    change refetches and replaces the whole mailbox list; an Email change
    never fetches anything — it bumps ``email_refresh_counter`` and records
    the new state token, and list views decide whether to re-run their own
    paginated query.  No add/remove/modify diff is ever computed.

    Concurrent refreshes (push-triggered vs user-triggered) are not ordered:
    whichever response lands last wins.
    """

    def __init__(self, client: JmapClient) -> None:
        self._client = client
        self.mailboxes: list[Mailbox] = []
        self.mailbox_state: str | None = None
        self.email_state: str | None = None
        self.email_refresh_counter = 0
        self._listeners: list[RefreshListener] = []
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Detach from the session (logout) and cancel queued refetches.

        Await ``wait_pending()`` afterwards, before the client is closed.
        """
        self._closed = True
        self._listeners.clear()
        for task in list(self._pending):
            task.cancel()

    def set_mailboxes(self, mailboxes: list[Mailbox], state: str | None) -> None:
        self.mailboxes = mailboxes
        self.mailbox_state = state

    def add_refresh_listener(self, listener: RefreshListener) -> Callable[[], None]:
        """Register a listener for Email staleness; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def handle_state_change(self, change: StateChange) -> None:
        """Apply one StateChange.  Safe to call from the push loop."""
        if self._closed:
            return
        type_changes = change.changed.get(self._client.account_id)
        if type_changes is None:
            return

        if MAILBOX_TYPE in type_changes:
            task = asyncio.ensure_future(self.refresh_mailboxes())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        if EMAIL_TYPE in type_changes:
            self.email_refresh_counter += 1
            self.email_state = type_changes[EMAIL_TYPE]
            logger.debug(
                "Email state → %s (refresh #%d)", self.email_state, self.email_refresh_counter
            )
            for listener in list(self._listeners):
                try:
                    listener(self.email_refresh_counter)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Refresh listener failed: %s", exc, exc_info=True)

    async def refresh_mailboxes(self) -> None:
        """Refetch the full mailbox list and replace the current one."""
        try:
            mailboxes, state = await self._client.get_mailboxes()
        except JmapError as exc:
            logger.warning("Mailbox refresh failed: %s", exc)
            return
        # Logout may have happened while the request was in flight.
        if self._closed:
            logger.debug("Discarding mailbox refresh for a closed store")
            return
        self.set_mailboxes(mailboxes, state)
        logger.info("Mailbox list refreshed (%d mailboxes)", len(mailboxes))

    async def wait_pending(self) -> None:
        """Wait for push-triggered refetches that are still running."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
