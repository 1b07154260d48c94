"""
Discord broadcaster.

Creates and edits channel messages via the Discord REST API.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from eventbeacon.delivery.broadcasters.base import Broadcaster

if TYPE_CHECKING:
    from eventbeacon.delivery.config import DiscordConfig
    from eventbeacon.delivery.renderer import OutboundMessage

logger = logging.getLogger(__name__)


class DiscordBroadcaster(Broadcaster):
    """
    Discord delivery using bot authentication.

    Edits fall back to a fresh create when the previous message is gone (404).
    """

    def __init__(self, config: DiscordConfig) -> None:
        self._config = config
        self._session: aiohttp.ClientSession | None = None

    @property
    def name(self) -> str:
        return "discord"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"Authorization": f"Bot {self._config.bot_token}"},
            )
        return self._session

    async def broadcast(
        self,
        channel_id: str,
        message: OutboundMessage,
        message_id: str | None = None,
    ) -> str | None:
        """Create or edit a message in a channel."""
        if not self._config.enabled:
            logger.warning("Discord broadcaster not enabled")
            return None

        payload = message.to_payload()

        if message_id:
            url = f"{self._config.api_base}/channels/{channel_id}/messages/{message_id}"
            result, status = await self._request("PATCH", url, payload)
            if result is not None or status != 404:
                return result
            logger.info(
                "Previous message not found, sending a new one",
                extra={"channel_id": channel_id, "message_id": message_id},
            )

        url = f"{self._config.api_base}/channels/{channel_id}/messages"
        result, _ = await self._request("POST", url, payload)
        return result

    async def _request(
        self, method: str, url: str, payload: dict[str, Any]
    ) -> tuple[str | None, int | None]:
        """
        Send one message request with rate-limit retries.

        Returns:
            (message id or None, last HTTP status or None on connection error)
        """
        for attempt in range(self._config.max_retries + 1):
            try:
                session = await self._get_session()
                async with session.request(method, url, json=payload) as resp:
                    status = resp.status

                    if 200 <= status < 300:
                        data = await resp.json()
                        message_id = data.get("id") if isinstance(data, dict) else None
                        return (str(message_id) if message_id else None), status

                    # Rate limited
                    if status == 429:
                        data = await resp.json()
                        retry_after = float(data.get("retry_after", 1.0))
                        logger.warning(
                            "Discord rate limited",
                            extra={"retry_after": retry_after, "attempt": attempt},
                        )
                        if attempt < self._config.max_retries:
                            await asyncio.sleep(min(retry_after, self._config.max_retry_after_s))
                            continue
                        return None, status

                    error_text = await resp.text()
                    if status == 404 and method == "PATCH":
                        return None, status
                    logger.error(
                        "Discord request failed",
                        extra={
                            "method": method,
                            "status": status,
                            "error": error_text[:200],
                            "attempt": attempt,
                        },
                    )
                    # Client errors won't get better on retry
                    if status >= 500 and attempt < self._config.max_retries:
                        await asyncio.sleep(1)
                        continue
                    return None, status

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(
                    "Discord connection error",
                    extra={"error": str(e) or type(e).__name__, "attempt": attempt},
                )
                if attempt < self._config.max_retries:
                    await asyncio.sleep(1)
                    continue
                return None, None

        return None, None

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
