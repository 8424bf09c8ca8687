"""Helpers for building new messages and replies."""

from jmapmail.jmap.types import Email, EmailAddress


def parse_addresses(text: str) -> list[EmailAddress]:
    """Split a comma-separated recipient field into addresses."""
    return [EmailAddress(email=part.strip()) for part in text.split(",") if part.strip()]


def reply_subject(subject: str | None) -> str:
    subject = subject or ""
    if subject.startswith("Re: "):
        return subject
    return f"Re: {subject}"


def reply_recipients(
    email: Email, my_email: str, reply_all: bool = False
) -> tuple[list[EmailAddress], list[EmailAddress]]:
    """Return ``(to, cc)`` for a reply.

    A plain reply goes to the original sender.  Reply-all adds the original
    To and Cc recipients, minus our own address.
    """
    to = [EmailAddress(email=a.email) for a in email.from_ or []]
    if not reply_all:
        return to, []
    to.extend(EmailAddress(email=a.email) for a in email.to or [] if a.email != my_email)
    cc = [EmailAddress(email=a.email) for a in email.cc or [] if a.email != my_email]
    return to, cc


def quote_body(email: Email) -> str:
    """Build the quoted reply body: attribution line plus ``> `` prefixed text."""
    sender = str(email.from_[0]) if email.from_ else ""
    date = email.received_at or ""
    quoted = "\n".join(f"> {line}" for line in email.text_content().splitlines())
    return f"\n\nOn {date}, {sender} wrote:\n{quoted}"
