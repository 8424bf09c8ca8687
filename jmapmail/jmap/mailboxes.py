"""Mailbox tree helpers: ordering, flattening and role-based slugs."""

from collections.abc import Sequence

from jmapmail.jmap.types import Mailbox

#: Roles that get a stable, human-readable slug instead of the raw id.
WELL_KNOWN_ROLES: tuple[str, ...] = ("inbox", "drafts", "sent", "junk", "trash", "archive")

_ROLE_ORDER: dict[str, int] = {"inbox": 0, "drafts": 1, "sent": 2, "junk": 3, "trash": 4}
_OTHER_ROLE = 5
_NO_ROLE = 6


def role_sort_key(mailbox: Mailbox) -> tuple[int, int, str]:
    """Well-known roles first, then sortOrder, then name."""
    if mailbox.role is None:
        rank = _NO_ROLE
    else:
        rank = _ROLE_ORDER.get(mailbox.role, _OTHER_ROLE)
    return rank, mailbox.sort_order, mailbox.name


def flatten_tree(
    mailboxes: Sequence[Mailbox], parent_id: str | None = None, depth: int = 0
) -> list[tuple[Mailbox, int]]:
    """Flatten the parentId tree depth-first into ``(mailbox, depth)`` pairs."""
    children = sorted((m for m in mailboxes if m.parent_id == parent_id), key=role_sort_key)
    result: list[tuple[Mailbox, int]] = []
    for child in children:
        result.append((child, depth))
        result.extend(flatten_tree(mailboxes, child.id, depth + 1))
    return result


def mailbox_slug(mailboxes: Sequence[Mailbox], mailbox_id: str) -> str:
    """Return the role name for well-known mailboxes, else the raw id."""
    for m in mailboxes:
        if m.id == mailbox_id and m.role in WELL_KNOWN_ROLES:
            return m.role
    return mailbox_id


def resolve_mailbox_slug(mailboxes: Sequence[Mailbox], slug: str) -> str | None:
    """Map a slug back to a mailbox id; role match wins over raw id."""
    if slug in WELL_KNOWN_ROLES:
        for m in mailboxes:
            if m.role == slug:
                return m.id
    if any(m.id == slug for m in mailboxes):
        return slug
    return None
