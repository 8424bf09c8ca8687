"""JmapClient — one typed, validated operation per JMAP method the app needs."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from jmapmail.jmap.codec import (
    CreationRef,
    Invocation,
    Response,
    ResultReference,
    check_correlation,
    decode_response,
    encode_request,
    raise_for_errors,
)
from jmapmail.jmap.errors import ApiError, DecodeError, MethodError, ThreadNotFound
from jmapmail.jmap.transport import Transport
from jmapmail.jmap.types import (
    Email,
    EmailAddress,
    EmailPage,
    Identity,
    Mailbox,
    Session,
    SetError,
    Thread,
)

logger = logging.getLogger(__name__)

#: Properties for list rows: a small payload, enough for a summary line.
LIST_PROPERTIES: list[str] = [
    "id",
    "threadId",
    "from",
    "subject",
    "receivedAt",
    "preview",
    "keywords",
    "hasAttachment",
]

#: Properties for the full (thread) view.  Text bodies are inlined through
#: fetchTextBodyValues; HTML parts stay referenced by blob/part id.
BODY_PROPERTIES: list[str] = [
    "id", "blobId", "threadId", "mailboxIds", "keywords",
    "from", "to", "cc", "bcc", "replyTo",
    "subject", "sentAt", "receivedAt",
    "hasAttachment", "preview",
    "textBody", "htmlBody", "bodyValues",
]

# Creation ids used by send_email; the submission refers back to the draft.
_DRAFT_CREATION_ID = "emailToSend"
_SUBMISSION_CREATION_ID = "sub0"


def _decode_list(inv: Invocation, decoder: Any) -> list[Any]:
    raw = inv.arguments.get("list")
    if not isinstance(raw, list):
        raise ApiError(f"Missing list in {inv.name} response")
    try:
        return [decoder(item) for item in raw]
    except DecodeError:
        raise
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Bad item in {inv.name} list: {exc}") from exc


def _check_not_created(inv: Invocation, creation_id: str) -> None:
    not_created = inv.arguments.get("notCreated")
    if isinstance(not_created, dict) and creation_id in not_created:
        err = SetError.from_dict(not_created[creation_id])
        raise MethodError(err.type, err.description)


class JmapClient:
    """Typed facade over a discovered JMAP session.

    Instances are shared read-only by every task (UI calls and the push
    synchronizer alike).  Nothing here mutates after construction;
    re-authenticating means building a new client via ``connect()``.
    """

    def __init__(self, transport: Transport, session: Session, account_id: str) -> None:
        self._transport = transport
        self._session = session
        self._account_id = account_id

    @property
    def session(self) -> Session:
        return self._session

    @property
    def account_id(self) -> str:
        return self._account_id

    @property
    def transport(self) -> Transport:
        return self._transport

    async def aclose(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self._transport.aclose()

    # ── Envelope ───────────────────────────────────────────────────────────────

    async def execute(self, invocations: list[Invocation]) -> Response:
        """Send a batch of invocations and return the correlated response.

        A top-level ``error`` invocation anywhere in the batch fails the
        whole call with MethodError, so callers never see a mix of partial
        results and protocol failures.
        """
        body = encode_request(invocations)
        logger.debug("JMAP → %s", [inv.name for inv in invocations])
        payload = await self._transport.post_json(self._session.api_url, body)
        response = decode_response(payload)
        raise_for_errors(response)
        check_correlation(invocations, response)
        if response.session_state is not None and response.session_state != self._session.state:
            # The session object is never refreshed; see DESIGN.md.
            logger.warning(
                "Server session state changed (%s → %s); capabilities may be stale",
                self._session.state,
                response.session_state,
            )
        return response

    async def _call(self, name: str, arguments: dict[str, Any], call_id: str) -> Invocation:
        response = await self.execute([Invocation(name, arguments, call_id)])
        return response.get(call_id, name)

    # ── Mailboxes ──────────────────────────────────────────────────────────────

    async def get_mailboxes(self) -> tuple[list[Mailbox], str]:
        """Return every mailbox in the account plus the Mailbox state token."""
        inv = await self._call(
            "Mailbox/get", {"accountId": self._account_id, "ids": None}, "m0"
        )
        mailboxes = _decode_list(inv, Mailbox.from_dict)
        return mailboxes, str(inv.arguments.get("state", ""))

    @staticmethod
    def find_mailbox_by_role(mailboxes: Sequence[Mailbox], role: str) -> Mailbox | None:
        """Find a mailbox by role (e.g. "drafts", "sent", "inbox")."""
        return next((m for m in mailboxes if m.role == role), None)

    # ── Emails ─────────────────────────────────────────────────────────────────

    async def query_emails(self, mailbox_id: str, position: int = 0, limit: int = 50) -> EmailPage:
        """Query one page of a mailbox, newest first, one email per thread."""
        inv = await self._call(
            "Email/query",
            {
                "accountId": self._account_id,
                "filter": {"inMailbox": mailbox_id},
                "sort": [{"property": "receivedAt", "isAscending": False}],
                "collapseThreads": True,
                "position": position,
                "limit": limit,
                "calculateTotal": True,
            },
            "q0",
        )
        raw_ids = inv.arguments.get("ids")
        if not isinstance(raw_ids, list):
            raise ApiError("Missing ids in Email/query response")
        ids = [i for i in raw_ids if isinstance(i, str)]
        total = inv.arguments.get("total")
        return EmailPage(
            ids=ids,
            total=int(total) if isinstance(total, int) else 0,
            position=position,
        )

    async def get_emails(
        self, ids: Sequence[str], properties: Sequence[str] = LIST_PROPERTIES
    ) -> tuple[list[Email], str]:
        """Fetch emails by id with a caller-chosen property list."""
        if not ids:
            return [], ""
        inv = await self._call(
            "Email/get",
            {"accountId": self._account_id, "ids": list(ids), "properties": list(properties)},
            "e0",
        )
        return _decode_list(inv, Email.from_dict), str(inv.arguments.get("state", ""))

    async def get_email_bodies(self, ids: Sequence[str]) -> tuple[list[Email], str]:
        """Fetch full emails with text bodies inlined, in one round trip."""
        if not ids:
            return [], ""
        inv = await self._call(
            "Email/get",
            {
                "accountId": self._account_id,
                "ids": list(ids),
                "properties": BODY_PROPERTIES,
                "fetchTextBodyValues": True,
            },
            "eb0",
        )
        return _decode_list(inv, Email.from_dict), str(inv.arguments.get("state", ""))

    # ── Threads ────────────────────────────────────────────────────────────────

    async def get_thread(self, thread_id: str) -> Thread:
        """Return the thread's ordered email ids; ThreadNotFound if absent."""
        inv = await self._call(
            "Thread/get", {"accountId": self._account_id, "ids": [thread_id]}, "t0"
        )
        threads = _decode_list(inv, Thread.from_dict)
        if not threads:
            raise ThreadNotFound(thread_id)
        return threads[0]

    async def get_thread_emails(self, thread_id: str) -> list[Email]:
        """Fetch a thread's full emails in one request.

        Email/get takes its ids from the Thread/get result through a result
        reference, saving the second round trip of get_thread() followed by
        get_email_bodies().
        """
        response = await self.execute([
            Invocation("Thread/get", {"accountId": self._account_id, "ids": [thread_id]}, "t0"),
            Invocation(
                "Email/get",
                {
                    "accountId": self._account_id,
                    "ids": ResultReference(result_of="t0", name="Thread/get", path="/list/*/emailIds"),
                    "properties": BODY_PROPERTIES,
                    "fetchTextBodyValues": True,
                },
                "eb0",
            ),
        ])
        if not _decode_list(response.get("t0", "Thread/get"), Thread.from_dict):
            raise ThreadNotFound(thread_id)
        return _decode_list(response.get("eb0", "Email/get"), Email.from_dict)

    # ── Identities & submission ────────────────────────────────────────────────

    async def get_identities(self) -> list[Identity]:
        inv = await self._call(
            "Identity/get", {"accountId": self._account_id, "ids": None}, "i0"
        )
        return _decode_list(inv, Identity.from_dict)

    async def send_email(
        self,
        identity_id: str,
        *,
        from_: Sequence[EmailAddress],
        to: Sequence[EmailAddress],
        subject: str,
        body: str,
        drafts_mailbox_id: str,
        sent_mailbox_id: str,
        cc: Sequence[EmailAddress] = (),
        bcc: Sequence[EmailAddress] = (),
    ) -> None:
        """Create a draft and submit it in a single request.

        Email/set creates the draft under a client-chosen creation id;
        EmailSubmission/set points at it with a CreationRef and carries an
        onSuccessUpdateEmail patch that moves it from Drafts to Sent and
        clears ``$draft`` only if the submission succeeds.  The server
        reports the whole sequence together.

        Raises MethodError if either creation appears in ``notCreated``.
        """
        draft = CreationRef(_DRAFT_CREATION_ID)
        email_create: dict[str, Any] = {
            "mailboxIds": {drafts_mailbox_id: True},
            "from": list(from_),
            "to": list(to),
            "subject": subject,
            "keywords": {"$seen": True, "$draft": True},
            "textBody": [{"partId": "body", "type": "text/plain"}],
            "bodyValues": {"body": {"value": body}},
        }
        if cc:
            email_create["cc"] = list(cc)
        if bcc:
            email_create["bcc"] = list(bcc)

        on_success = {
            draft: {
                f"mailboxIds/{drafts_mailbox_id}": None,
                f"mailboxIds/{sent_mailbox_id}": True,
                "keywords/$draft": None,
            }
        }
        response = await self.execute([
            Invocation(
                "Email/set",
                {"accountId": self._account_id, "create": {_DRAFT_CREATION_ID: email_create}},
                "s0",
            ),
            Invocation(
                "EmailSubmission/set",
                {
                    "accountId": self._account_id,
                    "create": {
                        _SUBMISSION_CREATION_ID: {"identityId": identity_id, "emailId": draft}
                    },
                    "onSuccessUpdateEmail": on_success,
                },
                "s1",
            ),
        ])

        # Draft first: if it was never created the submission cannot exist.
        _check_not_created(response.get("s0", "Email/set"), _DRAFT_CREATION_ID)
        _check_not_created(response.get("s1", "EmailSubmission/set"), _SUBMISSION_CREATION_ID)
        logger.info("Sent email %r to %s", subject, ", ".join(a.email for a in to))
