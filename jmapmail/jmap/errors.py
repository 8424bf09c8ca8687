"""Exception hierarchy for the JMAP client.

Every failure surfaced by the client is a ``JmapError`` subclass so callers
can decide per call whether to show it or fall back to an empty result.
"""


class JmapError(Exception):
    """Base class for all JMAP client failures."""


class AuthError(JmapError):
    """The server answered 401 — credentials rejected. Never retried."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class NoMailCapability(JmapError):
    """The session does not advertise urn:ietf:params:jmap:mail."""

    def __init__(self) -> None:
        super().__init__("Server does not support JMAP Mail capability")


class NoAccount(JmapError):
    """The session has no primary account for the mail capability."""

    def __init__(self) -> None:
        super().__init__("No mail account found")


class MethodError(JmapError):
    """A method-level or set-level failure reported by the server.

    ``kind`` is the JMAP error ``type`` (e.g. ``invalidArguments``,
    ``overQuota``); ``description`` is the optional server text.
    """

    def __init__(self, kind: str, description: str | None = None) -> None:
        self.kind = kind
        self.description = description
        message = f"Method error: {kind}"
        if description:
            message += f": {description}"
        super().__init__(message)


class ApiError(JmapError):
    """A non-2xx status or a response that violates the expected shape."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.message = message
        self.status = status
        super().__init__(f"API error: {message}")


class ThreadNotFound(JmapError):
    """Thread/get returned no thread for the requested id."""

    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")


class TransportError(JmapError):
    """The HTTP exchange itself failed (DNS, connect, read, TLS...)."""


class DecodeError(JmapError):
    """A JSON payload could not be decoded into the expected type."""
