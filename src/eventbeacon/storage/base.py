"""
Persistence protocols.

NotificationStore holds lifecycle records keyed by (type, timestamp).
SubscriberStore holds recipients and their per-type delivery settings.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from eventbeacon.contracts.events import EventType, NotificationRecord, Subscriber


class NotificationStore(Protocol):
    """Lifecycle record persistence."""

    async def find_record(self, event_type: EventType, timestamp: int) -> NotificationRecord | None:
        """Return the record for an occurrence, or None if unseen."""
        ...

    async def create_record(self, record: NotificationRecord) -> NotificationRecord:
        """
        Persist a new record.

        Raises:
            StorageError: If the write failed or the occurrence already has a record.
        """
        ...

    async def mark_refreshed(self, record_id: int) -> None:
        """
        Set refreshed=True on a record.

        Raises:
            StorageError: If the write failed or the record does not exist.
        """
        ...


class SubscriberStore(Protocol):
    """Recipient persistence."""

    async def list_subscribers_for_type(self, event_type: EventType) -> Sequence[Subscriber]:
        """Subscribers with at least one enabled setting for the type."""
        ...

    async def write_back_message_id(
        self,
        subscriber_id: str,
        event_type: EventType,
        channel_id: str,
        message_id: str,
    ) -> None:
        """Store the last message id for a subscriber's (type, channel) setting."""
        ...

    async def upsert_subscriber(self, subscriber: Subscriber) -> None:
        """Insert or replace a subscriber and its settings."""
        ...

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        """Subscriber by id, or None."""
        ...
