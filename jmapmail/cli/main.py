"""CLI entry point for the JMAP mail client."""

import logging
from dataclasses import dataclass

import click
from dotenv import load_dotenv

from jmapmail.app.config import ClientConfig
from jmapmail.app.credentials import CredentialStore, EnvCredentialStore

logger = logging.getLogger(__name__)


@dataclass
class CliContext:
    config: ClientConfig
    credentials: CredentialStore


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """JMAP mail client — browse mailboxes, read threads, send, and watch for changes."""
    load_dotenv()
    config = ClientConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    ctx.obj = CliContext(config=config, credentials=EnvCredentialStore())


# Import and register commands after cli is defined to avoid circular imports.
from jmapmail.cli.commands import identities, list_emails, mailboxes, send, thread, watch  # noqa: E402

cli.add_command(mailboxes)
cli.add_command(list_emails)
cli.add_command(thread)
cli.add_command(identities)
cli.add_command(send)
cli.add_command(watch)
