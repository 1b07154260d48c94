"""Recipient resolution: which subscribers want an event type."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from eventbeacon.contracts.events import EventType, Subscriber
    from eventbeacon.storage.base import SubscriberStore


class RecipientResolver:
    """Lists subscribers with an enabled setting for a type, ordered by id."""

    def __init__(self, store: SubscriberStore) -> None:
        self._store = store

    async def list_subscribers(self, event_type: EventType) -> list[Subscriber]:
        subscribers = await self._store.list_subscribers_for_type(event_type)
        return sorted(
            (s for s in subscribers if s.wants(event_type)),
            key=lambda s: s.id,
        )
