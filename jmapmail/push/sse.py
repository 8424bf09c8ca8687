"""Incremental Server-Sent Events parser for the JMAP push channel.

The parser is fed raw text chunks exactly as they come off the socket.
Chunk boundaries are arbitrary — a line (or a CRLF pair) may be split
across reads — so incomplete trailing text is buffered until the next
``feed()``.
"""

import logging
from dataclasses import dataclass

from jmapmail.jmap.errors import DecodeError
from jmapmail.jmap.types import StateChange

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TYPE = "message"
STATE_EVENT_TYPE = "state"

#: Longest partial line buffered before the stream is treated as broken.
MAX_LINE_LENGTH = 1024 * 1024


@dataclass(frozen=True)
class SseEvent:
    type: str
    data: str


class SseParser:
    """Line-oriented SSE state machine.

    ``id:`` lines are accepted and ignored: the client does not track
    Last-Event-ID, so a reconnect always subscribes from "now".
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._event_type = ""
        self._data: list[str] = []

    def feed(self, chunk: str) -> list[SseEvent]:
        """Consume a chunk and return every event it completed.

        Raises DecodeError if an unterminated line grows past
        ``MAX_LINE_LENGTH``; the push loop then reconnects.
        """
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        if len(self._buffer) > MAX_LINE_LENGTH:
            self._buffer = ""
            raise DecodeError(f"SSE line exceeds {MAX_LINE_LENGTH} characters")
        events: list[SseEvent] = []
        for line in lines:
            event = self.feed_line(line.removesuffix("\r"))
            if event is not None:
                events.append(event)
        return events

    def feed_line(self, line: str) -> SseEvent | None:
        """Consume one complete line (terminator already stripped)."""
        if not line:
            return self._flush()
        if line.startswith(":"):
            return None
        if line.startswith("event:"):
            self._event_type = line[len("event:"):].strip()
        elif line.startswith("data:"):
            self._data.append(line[len("data:"):].strip())
        # "id:", "retry:" and unknown fields are ignored
        return None

    def _flush(self) -> SseEvent | None:
        event_type, self._event_type = self._event_type, ""
        data, self._data = self._data, []
        if not data:
            return None
        return SseEvent(type=event_type or DEFAULT_EVENT_TYPE, data="\n".join(data))


def expand_event_source_url(
    template: str, types: str = "*", closeafter: str = "no", ping: int = 30
) -> str:
    """Substitute the ``{types}``, ``{closeafter}`` and ``{ping}`` placeholders."""
    return (
        template.replace("{types}", types)
        .replace("{closeafter}", closeafter)
        .replace("{ping}", str(ping))
    )


def parse_state_change(event: SseEvent) -> StateChange | None:
    """Decode a ``state`` event; anything else, or malformed data, yields None."""
    if event.type != STATE_EVENT_TYPE:
        return None
    try:
        return StateChange.from_json(event.data)
    except DecodeError as exc:
        logger.debug("Dropping malformed state event: %s", exc)
        return None
