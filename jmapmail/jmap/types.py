"""Typed JMAP data shared across the client, the push channel and the store.

Wire names are camelCase; every type exposes ``from_dict`` to decode the
server's JSON and, where the client sends it back, ``to_dict``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from jmapmail.jmap.errors import DecodeError

CORE_CAPABILITY = "urn:ietf:params:jmap:core"
MAIL_CAPABILITY = "urn:ietf:params:jmap:mail"
SUBMISSION_CAPABILITY = "urn:ietf:params:jmap:submission"

#: Capabilities declared in the ``using`` list of every request.
USING: list[str] = [CORE_CAPABILITY, MAIL_CAPABILITY, SUBMISSION_CAPABILITY]


def _require(data: dict[str, Any], key: str, owner: str) -> Any:
    if key not in data:
        raise DecodeError(f"{owner}: missing required field {key!r}")
    return data[key]


def _as_dict(data: Any, owner: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"{owner}: expected an object, got {type(data).__name__}")
    return data


def _addresses(raw: Any) -> list[EmailAddress] | None:
    if raw is None:
        return None
    return [EmailAddress.from_dict(a) for a in raw]


# ── Session & Account ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Account:
    name: str
    is_personal: bool
    is_read_only: bool
    account_capabilities: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Account:
        data = _as_dict(data, "Account")
        return cls(
            name=str(_require(data, "name", "Account")),
            is_personal=bool(_require(data, "isPersonal", "Account")),
            is_read_only=bool(_require(data, "isReadOnly", "Account")),
            account_capabilities=dict(data.get("accountCapabilities") or {}),
        )


@dataclass(frozen=True)
class Session:
    """The server's session resource, fetched once at connect time.

    ``event_source_url`` is optional: servers without push leave it out and
    the synchronizer stays disabled.
    """

    capabilities: dict[str, Any]
    accounts: dict[str, Account]
    primary_accounts: dict[str, str]
    username: str
    api_url: str
    download_url: str
    upload_url: str
    state: str
    event_source_url: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Session:
        data = _as_dict(data, "Session")
        accounts = _as_dict(_require(data, "accounts", "Session"), "Session.accounts")
        return cls(
            capabilities=dict(_as_dict(_require(data, "capabilities", "Session"), "Session.capabilities")),
            accounts={k: Account.from_dict(v) for k, v in accounts.items()},
            primary_accounts={
                str(k): str(v)
                for k, v in _as_dict(
                    _require(data, "primaryAccounts", "Session"), "Session.primaryAccounts"
                ).items()
            },
            username=str(_require(data, "username", "Session")),
            api_url=str(_require(data, "apiUrl", "Session")),
            download_url=str(_require(data, "downloadUrl", "Session")),
            upload_url=str(_require(data, "uploadUrl", "Session")),
            state=str(_require(data, "state", "Session")),
            event_source_url=data.get("eventSourceUrl"),
        )


# ── Mail types ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MailboxRights:
    may_read_items: bool = False
    may_add_items: bool = False
    may_remove_items: bool = False
    may_set_seen: bool = False
    may_set_keywords: bool = False
    may_create_child: bool = False
    may_rename: bool = False
    may_delete: bool = False
    may_submit: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MailboxRights:
        return cls(
            may_read_items=bool(data.get("mayReadItems", False)),
            may_add_items=bool(data.get("mayAddItems", False)),
            may_remove_items=bool(data.get("mayRemoveItems", False)),
            may_set_seen=bool(data.get("maySetSeen", False)),
            may_set_keywords=bool(data.get("maySetKeywords", False)),
            may_create_child=bool(data.get("mayCreateChild", False)),
            may_rename=bool(data.get("mayRename", False)),
            may_delete=bool(data.get("mayDelete", False)),
            may_submit=bool(data.get("maySubmit", False)),
        )


@dataclass(frozen=True)
class Mailbox:
    """A mailbox node; ``parent_id`` links it into the account's tree."""

    id: str
    name: str
    parent_id: str | None = None
    role: str | None = None
    sort_order: int = 0
    total_emails: int = 0
    unread_emails: int = 0
    total_threads: int = 0
    unread_threads: int = 0
    my_rights: MailboxRights | None = None
    is_subscribed: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Mailbox:
        data = _as_dict(data, "Mailbox")
        rights = data.get("myRights")
        return cls(
            id=str(_require(data, "id", "Mailbox")),
            name=str(_require(data, "name", "Mailbox")),
            parent_id=data.get("parentId"),
            role=data.get("role"),
            sort_order=int(data.get("sortOrder") or 0),
            total_emails=int(data.get("totalEmails") or 0),
            unread_emails=int(data.get("unreadEmails") or 0),
            total_threads=int(data.get("totalThreads") or 0),
            unread_threads=int(data.get("unreadThreads") or 0),
            my_rights=MailboxRights.from_dict(rights) if isinstance(rights, dict) else None,
            is_subscribed=data.get("isSubscribed"),
        )


@dataclass(frozen=True)
class EmailAddress:
    email: str
    name: str | None = None

    def __str__(self) -> str:
        if self.name:
            return f"{self.name} <{self.email}>"
        return self.email

    @classmethod
    def from_dict(cls, data: Any) -> EmailAddress:
        data = _as_dict(data, "EmailAddress")
        return cls(email=str(data.get("email") or ""), name=data.get("name"))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "email": self.email}


@dataclass(frozen=True)
class EmailBodyPart:
    part_id: str | None = None
    blob_id: str | None = None
    size: int | None = None
    type: str | None = None
    name: str | None = None
    charset: str | None = None
    disposition: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> EmailBodyPart:
        data = _as_dict(data, "EmailBodyPart")
        return cls(
            part_id=data.get("partId"),
            blob_id=data.get("blobId"),
            size=data.get("size"),
            type=data.get("type"),
            name=data.get("name"),
            charset=data.get("charset"),
            disposition=data.get("disposition"),
        )


@dataclass(frozen=True)
class EmailBodyValue:
    value: str
    is_encoding_problem: bool | None = None
    is_truncated: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> EmailBodyValue:
        data = _as_dict(data, "EmailBodyValue")
        return cls(
            value=str(_require(data, "value", "EmailBodyValue")),
            is_encoding_problem=data.get("isEncodingProblem"),
            is_truncated=data.get("isTruncated"),
        )


@dataclass(frozen=True)
class Email:
    """An email as returned by Email/get.

    Every field is optional because the caller picks the property list:
    a list view asks for a handful of summary fields, the thread view asks
    for everything including inlined text ``body_values``.
    """

    id: str | None = None
    blob_id: str | None = None
    thread_id: str | None = None
    mailbox_ids: dict[str, bool] | None = None
    keywords: dict[str, bool] | None = None
    size: int | None = None
    received_at: str | None = None
    from_: list[EmailAddress] | None = None
    to: list[EmailAddress] | None = None
    cc: list[EmailAddress] | None = None
    bcc: list[EmailAddress] | None = None
    reply_to: list[EmailAddress] | None = None
    subject: str | None = None
    sent_at: str | None = None
    has_attachment: bool | None = None
    preview: str | None = None
    text_body: list[EmailBodyPart] | None = None
    html_body: list[EmailBodyPart] | None = None
    body_values: dict[str, EmailBodyValue] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Email:
        data = _as_dict(data, "Email")
        text_body = data.get("textBody")
        html_body = data.get("htmlBody")
        body_values = data.get("bodyValues")
        return cls(
            id=data.get("id"),
            blob_id=data.get("blobId"),
            thread_id=data.get("threadId"),
            mailbox_ids=data.get("mailboxIds"),
            keywords=data.get("keywords"),
            size=data.get("size"),
            received_at=data.get("receivedAt"),
            from_=_addresses(data.get("from")),
            to=_addresses(data.get("to")),
            cc=_addresses(data.get("cc")),
            bcc=_addresses(data.get("bcc")),
            reply_to=_addresses(data.get("replyTo")),
            subject=data.get("subject"),
            sent_at=data.get("sentAt"),
            has_attachment=data.get("hasAttachment"),
            preview=data.get("preview"),
            text_body=[EmailBodyPart.from_dict(p) for p in text_body] if text_body is not None else None,
            html_body=[EmailBodyPart.from_dict(p) for p in html_body] if html_body is not None else None,
            body_values=(
                {k: EmailBodyValue.from_dict(v) for k, v in body_values.items()}
                if body_values is not None
                else None
            ),
        )

    @property
    def is_unread(self) -> bool:
        return not (self.keywords or {}).get("$seen", False)

    @property
    def is_flagged(self) -> bool:
        return bool((self.keywords or {}).get("$flagged", False))

    def text_content(self) -> str:
        """Return the first inlined text body part, or "" if none was fetched."""
        if not self.text_body or not self.body_values:
            return ""
        part_id = self.text_body[0].part_id
        if part_id is None or part_id not in self.body_values:
            return ""
        return self.body_values[part_id].value


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    name: str | None = None
    reply_to: list[EmailAddress] | None = None
    bcc: list[EmailAddress] | None = None
    text_signature: str | None = None
    html_signature: str | None = None
    may_delete: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Identity:
        data = _as_dict(data, "Identity")
        return cls(
            id=str(_require(data, "id", "Identity")),
            email=str(_require(data, "email", "Identity")),
            name=data.get("name"),
            reply_to=_addresses(data.get("replyTo")),
            bcc=_addresses(data.get("bcc")),
            text_signature=data.get("textSignature"),
            html_signature=data.get("htmlSignature"),
            may_delete=data.get("mayDelete"),
        )

    def address(self) -> EmailAddress:
        return EmailAddress(email=self.email, name=self.name or None)


@dataclass(frozen=True)
class Thread:
    id: str
    email_ids: list[str]

    @classmethod
    def from_dict(cls, data: Any) -> Thread:
        data = _as_dict(data, "Thread")
        return cls(
            id=str(_require(data, "id", "Thread")),
            email_ids=[str(i) for i in _require(data, "emailIds", "Thread")],
        )


@dataclass(frozen=True)
class EmailPage:
    """One page of a thread-collapsed Email/query."""

    ids: list[str]
    total: int
    position: int = 0

    @property
    def has_more(self) -> bool:
        return self.position + len(self.ids) < self.total


@dataclass(frozen=True)
class SetError:
    type: str
    description: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> SetError:
        if not isinstance(data, dict):
            return cls(type="unknown")
        return cls(type=str(data.get("type") or "unknown"), description=data.get("description"))


# ── Push ───────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StateChange:
    """A push notification: account id → data type → new state token."""

    changed: dict[str, dict[str, str]]

    @classmethod
    def from_json(cls, text: str) -> StateChange:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"StateChange is not valid JSON: {exc}") from exc
        data = _as_dict(data, "StateChange")
        changed = _as_dict(_require(data, "changed", "StateChange"), "StateChange.changed")
        result: dict[str, dict[str, str]] = {}
        for account_id, types in changed.items():
            types = _as_dict(types, "StateChange.changed[account]")
            result[str(account_id)] = {str(k): str(v) for k, v in types.items()}
        return cls(changed=result)
