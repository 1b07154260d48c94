"""
Configuration for the event source client.

The source is polled once per tick. There is no retry or backoff: a failed
fetch is simply retried on the next tick.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_SOURCE_URL = "https://d4armory.io/api"


@dataclass
class SourceConfig:
    """
    Event source endpoint configuration.

    Attributes:
        base_url: API root (EVENT_SOURCE_URL env var overrides the default).
        status_path: Path of the service status endpoint.
        events_path: Path of the current events endpoint.
        timeout_s: Total timeout per request.
        user_agent: Sent with every request.
    """

    base_url: str = ""
    status_path: str = "/status"
    events_path: str = "/events/recent"
    timeout_s: float = 10.0
    user_agent: str = "eventbeacon/0.1"

    def __post_init__(self) -> None:
        if not self.base_url:
            self.base_url = os.environ.get("EVENT_SOURCE_URL", DEFAULT_SOURCE_URL)
        self.base_url = self.base_url.rstrip("/")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")

    @property
    def status_url(self) -> str:
        return f"{self.base_url}{self.status_path}"

    @property
    def events_url(self) -> str:
        return f"{self.base_url}{self.events_path}"
