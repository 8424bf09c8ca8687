"""Runtime configuration read from the environment (and .env via python-dotenv)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from jmapmail.jmap.transport import DEFAULT_TIMEOUT_SECONDS
from jmapmail.push.synchronizer import PING_INTERVAL_SECONDS, RECONNECT_DELAY_SECONDS


@dataclass
class ClientConfig:
    """Tunables for the HTTP client, the push channel and list paging."""

    http_timeout: float = DEFAULT_TIMEOUT_SECONDS
    reconnect_delay: float = RECONNECT_DELAY_SECONDS
    ping_interval: int = PING_INTERVAL_SECONDS
    page_size: int = 50
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build ClientConfig from environment variables."""
        return cls(
            http_timeout=float(os.environ.get("JMAP_HTTP_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
            reconnect_delay=float(
                os.environ.get("JMAP_RECONNECT_DELAY_SECONDS", RECONNECT_DELAY_SECONDS)
            ),
            ping_interval=int(os.environ.get("JMAP_PING_SECONDS", PING_INTERVAL_SECONDS)),
            page_size=int(os.environ.get("JMAP_PAGE_SIZE", "50")),
            log_level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        )
