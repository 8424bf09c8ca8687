"""Session bootstrap — discovery, capability check and account resolution."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from jmapmail.jmap.client import JmapClient
from jmapmail.jmap.errors import NoAccount, NoMailCapability
from jmapmail.jmap.transport import DEFAULT_TIMEOUT_SECONDS, Transport, basic_auth_header
from jmapmail.jmap.types import MAIL_CAPABILITY, Session

logger = logging.getLogger(__name__)


def well_known_url(server_url: str) -> str:
    return f"{server_url.rstrip('/')}/.well-known/jmap"


def resolve_mail_account(session: Session) -> str:
    """Return the primary mail account id.

    The capability check comes first: a server without JMAP Mail is unusable
    even if its primaryAccounts map happens to name a mail account.  There is
    no fallback to an arbitrary account — the sending identity must be
    unambiguous.
    """
    if MAIL_CAPABILITY not in session.capabilities:
        raise NoMailCapability()
    account_id = session.primary_accounts.get(MAIL_CAPABILITY)
    if not account_id:
        raise NoAccount()
    return account_id


async def connect(
    server_url: str,
    username: str,
    password: str,
    *,
    http: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> JmapClient:
    """Discover the session at ``server_url`` and return a ready client.

    Raises AuthError on 401, ApiError on other non-2xx statuses,
    DecodeError on an incomplete session object, and NoMailCapability /
    NoAccount when the server cannot serve mail for this user.
    """
    transport = Transport(basic_auth_header(username, password), http=http, timeout=timeout)
    try:
        raw = await transport.get_json(well_known_url(server_url))
        session = Session.from_dict(raw)
        account_id = resolve_mail_account(session)
    except BaseException:
        await transport.aclose()
        raise
    logger.info("JMAP session established for %s (account %s)", session.username, account_id)
    return JmapClient(transport, session, account_id)


@asynccontextmanager
async def jmap_client(
    server_url: str,
    username: str,
    password: str,
    **kwargs: object,
) -> AsyncIterator[JmapClient]:
    """Async context manager around ``connect()`` that closes the client on exit.

    Example::

        async with jmap_client("https://jmap.example.com", "me", "secret") as client:
            mailboxes, _ = await client.get_mailboxes()
    """
    client = await connect(server_url, username, password, **kwargs)  # type: ignore[arg-type]
    try:
        yield client
    finally:
        await client.aclose()
