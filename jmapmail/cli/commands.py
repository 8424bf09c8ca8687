"""CLI command implementations — each command runs one session against the server."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from jmapmail.app.credentials import MemoryCredentialStore
from jmapmail.app.mail_app import MailApp
from jmapmail.jmap.errors import JmapError
from jmapmail.jmap.mailboxes import flatten_tree, resolve_mailbox_slug

if TYPE_CHECKING:
    from jmapmail.cli.main import CliContext

logger = logging.getLogger(__name__)
console = Console(width=200)


@asynccontextmanager
async def _session(obj: CliContext, *, push: bool = False) -> AsyncIterator[MailApp]:
    """Log in with the configured credentials; always log out on exit."""
    saved = obj.credentials.load()
    if saved is None:
        raise click.ClickException("Set JMAP_SERVER, JMAP_USERNAME and JMAP_PASSWORD (or use a .env file).")
    # Work on a private copy so logout never touches the configured store.
    app = MailApp(MemoryCredentialStore(), obj.config)
    try:
        await app.login(saved.server, saved.username, saved.password, push=push)
    except JmapError as exc:
        raise click.ClickException(str(exc)) from exc
    try:
        yield app
    finally:
        await app.logout()


def _run(coro: Coroutine[Any, Any, None]) -> None:
    try:
        asyncio.run(coro)
    except JmapError as exc:
        raise click.ClickException(str(exc)) from exc


# ── jmapmail mailboxes ───────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def mailboxes(obj: CliContext) -> None:
    """Show the mailbox tree with unread/total counts."""
    _run(_mailboxes_async(obj))


async def _mailboxes_async(obj: CliContext) -> None:
    async with _session(obj) as app:
        assert app.store is not None
        rows = flatten_tree(app.store.mailboxes)

    if not rows:
        console.print("[yellow]No mailboxes found.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Mailbox", max_width=40)
    table.add_column("Role", width=10)
    table.add_column("Unread", justify="right", width=7)
    table.add_column("Total", justify="right", width=7)
    table.add_column("ID", style="dim")
    for mailbox, depth in rows:
        unread_style = "bold" if mailbox.unread_emails else "dim"
        table.add_row(
            "  " * depth + mailbox.name,
            mailbox.role or "",
            f"[{unread_style}]{mailbox.unread_emails}[/{unread_style}]",
            str(mailbox.total_emails),
            mailbox.id,
        )
    console.print(table)


# ── jmapmail list ────────────────────────────────────────────────────────────────


@click.command("list")
@click.argument("mailbox", default="inbox")
@click.option("--position", default=0, show_default=True, help="Offset of the first row.")
@click.pass_obj
def list_emails(obj: CliContext, mailbox: str, position: int) -> None:
    """List one page of a mailbox (role name or id), newest conversation first."""
    _run(_list_async(obj, mailbox, position))


async def _list_async(obj: CliContext, slug: str, position: int) -> None:
    async with _session(obj) as app:
        assert app.store is not None
        mailbox_id = resolve_mailbox_slug(app.store.mailboxes, slug)
        if mailbox_id is None:
            raise click.ClickException(f"Unknown mailbox {slug!r}")
        emails, page = await app.load_page(mailbox_id, position)

    if not emails:
        console.print("[yellow]No emails in this range.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("From", max_width=30)
    table.add_column("Subject", max_width=50)
    table.add_column("Received", width=16)
    table.add_column("Thread", style="dim")
    for i, email in enumerate(emails, start=position + 1):
        sender = str(email.from_[0]) if email.from_ else ""
        subject = email.subject or "(no subject)"
        if email.is_unread:
            subject = f"[bold]{subject}[/bold]"
        if email.is_flagged:
            subject = f"★ {subject}"
        if email.has_attachment:
            subject += " 📎"
        table.add_row(str(i), sender, subject, (email.received_at or "")[:16], email.thread_id or "")
    console.print(table)

    shown = position + len(page.ids)
    more = f" — more with --position {shown}" if page.has_more else ""
    console.print(f"[dim]{position + 1}–{shown} of {page.total}{more}[/dim]")


# ── jmapmail thread ──────────────────────────────────────────────────────────────


@click.command()
@click.argument("thread_id")
@click.pass_obj
def thread(obj: CliContext, thread_id: str) -> None:
    """Print every message of a thread with its text body."""
    _run(_thread_async(obj, thread_id))


async def _thread_async(obj: CliContext, thread_id: str) -> None:
    async with _session(obj) as app:
        assert app.client is not None
        emails = await app.client.get_thread_emails(thread_id)

    for email in emails:
        sender = str(email.from_[0]) if email.from_ else "(unknown sender)"
        title = f"[bold]{email.subject or '(no subject)'}[/bold] — {sender}"
        console.print(
            Panel(
                email.text_content() or f"[dim]{email.preview or ''}[/dim]",
                title=title,
                subtitle=email.received_at or "",
                border_style="blue",
            )
        )


# ── jmapmail identities ──────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def identities(obj: CliContext) -> None:
    """List sending identities."""
    _run(_identities_async(obj))


async def _identities_async(obj: CliContext) -> None:
    async with _session(obj) as app:
        found = list(app.identities)

    if not found:
        console.print("[yellow]No identities found.[/yellow]")
        return
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Email")
    for identity in found:
        table.add_row(identity.id, identity.name or "", identity.email)
    console.print(table)


# ── jmapmail send ────────────────────────────────────────────────────────────────


@click.command()
@click.option("--to", "to", required=True, help="Comma-separated recipients.")
@click.option("--cc", default="", help="Comma-separated Cc recipients.")
@click.option("--bcc", default="", help="Comma-separated Bcc recipients.")
@click.option("--subject", required=True)
@click.option("--body", default=None, help="Message text; read from stdin when omitted.")
@click.pass_obj
def send(obj: CliContext, to: str, cc: str, bcc: str, subject: str, body: str | None) -> None:
    """Send a plain-text email from the first identity."""
    if body is None:
        body = sys.stdin.read()
    _run(_send_async(obj, to, cc, bcc, subject, body))


async def _send_async(obj: CliContext, to: str, cc: str, bcc: str, subject: str, body: str) -> None:
    async with _session(obj) as app:
        await app.send(to, subject, body, cc=cc, bcc=bcc)
    console.print(f"[green]Sent[/green] {subject!r} to {to}")


# ── jmapmail watch ───────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def watch(obj: CliContext) -> None:
    """Stay connected to the push channel and report changes until Ctrl+C."""
    try:
        _run(_watch_async(obj))
    except KeyboardInterrupt:
        # Ctrl+C on Windows (no add_signal_handler) arrives here
        console.print("Interrupted — goodbye")


async def _watch_async(obj: CliContext) -> None:
    done = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, done.set)
    except (NotImplementedError, AttributeError):
        pass

    async with _session(obj, push=True) as app:
        assert app.store is not None
        store = app.store

        def _on_email_change(counter: int) -> None:
            console.print(f"[cyan]Email changed[/cyan] (state {store.email_state}, refresh #{counter})")

        store.add_refresh_listener(_on_email_change)
        console.print(f"Watching {app.client.session.username if app.client else ''} — Ctrl+C to stop")
        await done.wait()
