"""Credential persistence seam — the core only sees an injected triple."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class Credentials:
    server: str
    username: str
    password: str


@runtime_checkable
class CredentialStore(Protocol):
    """Where the (server, username, password) triple lives between runs."""

    def load(self) -> Credentials | None:
        """Return saved credentials, or None if the user is logged out."""
        ...

    def save(self, credentials: Credentials) -> None: ...

    def clear(self) -> None: ...


class MemoryCredentialStore:
    """Keeps credentials for the lifetime of the process only."""

    def __init__(self, credentials: Credentials | None = None) -> None:
        self._credentials = credentials

    def load(self) -> Credentials | None:
        return self._credentials

    def save(self, credentials: Credentials) -> None:
        self._credentials = credentials

    def clear(self) -> None:
        self._credentials = None


class EnvCredentialStore:
    """Reads JMAP_SERVER / JMAP_USERNAME / JMAP_PASSWORD from the environment.

    ``save`` and ``clear`` only affect the current process environment; the
    .env file itself is never rewritten.
    """

    _KEYS = ("JMAP_SERVER", "JMAP_USERNAME", "JMAP_PASSWORD")

    def load(self) -> Credentials | None:
        server, username, password = (os.environ.get(k, "") for k in self._KEYS)
        if not (server and username and password):
            return None
        return Credentials(server, username, password)

    def save(self, credentials: Credentials) -> None:
        os.environ["JMAP_SERVER"] = credentials.server
        os.environ["JMAP_USERNAME"] = credentials.username
        os.environ["JMAP_PASSWORD"] = credentials.password

    def clear(self) -> None:
        for key in self._KEYS:
            os.environ.pop(key, None)
