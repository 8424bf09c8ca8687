"""Push synchronizer — keeps an SSE connection open and feeds state changes on.

State machine::

    DISCONNECTED → CONNECTING → STREAMING → RECONNECTING → CONNECTING → …
                                        ↘ DISCONNECTED (stop / logout)

Every failure (network error, bad handshake status, clean end of stream) is
handled the same way: log it, wait a fixed delay, reconnect.  There is no
backoff and no retry ceiling; the loop runs until ``stop()``.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from jmapmail.jmap.client import JmapClient
from jmapmail.jmap.types import StateChange
from jmapmail.push.sse import SseParser, expand_event_source_url, parse_state_change

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 3.0
PING_INTERVAL_SECONDS = 30

#: Called with every decoded state change for any account.
StateChangeHandler = Callable[[StateChange], None]


class SyncState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"


class PushSynchronizer:
    """Long-lived background task reading the session's event source.

    Holds the same JmapClient handle as the rest of the app.  ``stop()`` is
    the logout path: it wakes the reconnect delay and cancels the in-flight
    stream so a blocked read returns immediately instead of waiting for the
    next server ping.

    Usage::

        sync = PushSynchronizer(client, store.handle_state_change)
        task = asyncio.create_task(sync.run())
        ...
        sync.stop()
        await task
    """

    def __init__(
        self,
        client: JmapClient,
        on_change: StateChangeHandler,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        ping_interval: int = PING_INTERVAL_SECONDS,
        read_timeout: float | None = None,
    ) -> None:
        self._client = client
        self._on_change = on_change
        self._reconnect_delay = reconnect_delay
        self._ping_interval = ping_interval
        # Three missed pings means the connection is dead.
        self._read_timeout = read_timeout if read_timeout is not None else ping_interval * 3
        self._state = SyncState.DISCONNECTED
        self._stop_event = asyncio.Event()
        self._stream_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Stop the loop and abort any in-flight stream read."""
        if self._stop_event.is_set():
            return
        logger.info("Push channel stop requested")
        self._stop_event.set()
        if self._stream_task is not None and not self._stream_task.done():
            self._stream_task.cancel()

    async def run(self) -> None:
        """Connect, stream, and reconnect until stop() is called."""
        template = self._client.session.event_source_url
        if not template:
            logger.info("No eventSourceUrl in session — push disabled")
            return
        url = expand_event_source_url(template, "*", "no", self._ping_interval)

        try:
            while not self._stop_event.is_set():
                self._set_state(SyncState.CONNECTING)
                task = asyncio.ensure_future(self._stream_once(url))
                self._stream_task = task
                try:
                    await task
                    logger.info(
                        "Event stream ended — reconnecting in %.0fs", self._reconnect_delay
                    )
                except asyncio.CancelledError:
                    if not self._stop_event.is_set():
                        raise
                    break
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "Event stream error: %s — reconnecting in %.0fs",
                        exc,
                        self._reconnect_delay,
                    )
                finally:
                    self._stream_task = None

                if self._stop_event.is_set():
                    break
                self._set_state(SyncState.RECONNECTING)
                # stop() during the delay ends the loop at the while check
                await self._interruptible_sleep(self._reconnect_delay)
        finally:
            # Also reached when run() itself is cancelled from outside.
            self._set_state(SyncState.DISCONNECTED)
            logger.info("Push channel stopped")

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _stream_once(self, url: str) -> None:
        """Open one SSE connection and pump it until it ends or fails."""
        parser = SseParser()
        async with self._client.transport.event_stream(url, read_timeout=self._read_timeout) as chunks:
            self._set_state(SyncState.STREAMING)
            logger.info("Push channel open")
            async for chunk in chunks:
                for event in parser.feed(chunk):
                    change = parse_state_change(event)
                    if change is not None:
                        self._dispatch(change)
                if self._stop_event.is_set():
                    break

    def _dispatch(self, change: StateChange) -> None:
        try:
            self._on_change(change)
        except Exception as exc:  # noqa: BLE001
            logger.error("State change handler failed: %s", exc, exc_info=True)

    def _set_state(self, state: SyncState) -> None:
        if state is not self._state:
            logger.debug("Push channel %s → %s", self._state.value, state.value)
            self._state = state

    async def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep for `seconds` but wake immediately if stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
