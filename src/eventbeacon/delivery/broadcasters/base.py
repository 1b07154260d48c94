"""
Base broadcaster.

A broadcaster sends a message to a channel, or edits a previous one when a
message id is supplied, and reports the resulting message id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from eventbeacon.delivery.renderer import OutboundMessage


class Broadcaster(ABC):
    """Abstract base class for message broadcasters."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this broadcaster."""
        ...

    @abstractmethod
    async def broadcast(
        self,
        channel_id: str,
        message: OutboundMessage,
        message_id: str | None = None,
    ) -> str | None:
        """
        Create a message, or edit ``message_id`` if given.

        Args:
            channel_id: Target channel.
            message: Content and mention restrictions.
            message_id: Previous message to edit in place.

        Returns:
            Id of the created or edited message, or None on failure.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any resources held by this broadcaster."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
