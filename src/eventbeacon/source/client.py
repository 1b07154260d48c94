"""
HTTP client for the event source.

Both calls are plain reads. Failures (network, timeout, HTTP error, bad
payload) are logged and reported as None so the notifier can skip the tick.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
import orjson
from pydantic import ValidationError

from eventbeacon.contracts.events import Event, EventType, ServiceStatus
from eventbeacon.source.types import SourceConfig

logger = logging.getLogger(__name__)


class SourceClient:
    """
    Async client for the status and events endpoints.

    One GET per call, no retry.
    """

    def __init__(self, config: SourceConfig | None = None) -> None:
        self._config = config or SourceConfig()
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": self._config.user_agent},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _get_json(self, url: str) -> Any | None:
        """
        GET a URL and decode its JSON body.

        Returns:
            Decoded JSON, or None on any failure.
        """
        try:
            session = await self._get_session()
            async with session.get(url) as response:
                if response.status >= 400:
                    text = await response.text()
                    logger.warning(
                        "Source HTTP error",
                        extra={"url": url, "status": response.status, "body": text[:200]},
                    )
                    return None
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Source request failed",
                extra={"url": url, "error": str(e) or type(e).__name__},
            )
            return None

        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as e:
            logger.warning("Source returned invalid JSON", extra={"url": url, "error": str(e)})
            return None

    async def fetch_status(self) -> ServiceStatus | None:
        """
        Fetch the event service status.

        Returns:
            ServiceStatus, or None if the source could not be read.
        """
        data = await self._get_json(self._config.status_url)
        if not isinstance(data, dict):
            if data is not None:
                logger.warning("Unexpected status payload type")
            return None
        try:
            return ServiceStatus.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid status payload", extra={"error": str(e)})
            return None

    async def fetch_events(self) -> dict[EventType, Event] | None:
        """
        Fetch the current event set.

        Unknown event kinds are ignored and invalid entries are skipped.

        Returns:
            Mapping of event type to Event, or None if the source could not be read.
        """
        data = await self._get_json(self._config.events_url)
        if not isinstance(data, dict):
            if data is not None:
                logger.warning("Unexpected events payload type")
            return None
        return parse_events(data)


def parse_events(data: dict[str, Any]) -> dict[EventType, Event]:
    """Parse the source events payload, keyed by event kind."""
    events: dict[EventType, Event] = {}
    for key, raw in data.items():
        try:
            event_type = EventType(key)
        except ValueError:
            logger.debug("Ignoring unknown event kind", extra={"kind": key})
            continue

        if not isinstance(raw, dict):
            logger.warning("Skipping malformed event entry", extra={"kind": key})
            continue

        try:
            events[event_type] = Event.from_source(event_type, raw)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning(
                "Skipping invalid event entry",
                extra={"kind": key, "error": str(e)},
            )
    return events
