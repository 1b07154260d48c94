"""In-memory store, used for dry runs and tests."""

from __future__ import annotations

import copy
from dataclasses import dataclass

from eventbeacon.contracts.events import EventType, NotificationRecord, Subscriber
from eventbeacon.errors import StorageError


@dataclass
class StoreMetrics:
    """Call counters, handy when asserting on write behaviour."""

    creates: int = 0
    updates: int = 0
    write_backs: int = 0


class InMemoryStore:
    """
    Dict-backed implementation of NotificationStore and SubscriberStore.

    Returned objects are copies, so callers cannot mutate stored state
    without going through the store.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, int], NotificationRecord] = {}
        self._subscribers: dict[str, Subscriber] = {}
        self._next_id = 1
        self._metrics = StoreMetrics()

    @property
    def metrics(self) -> StoreMetrics:
        return self._metrics

    async def find_record(self, event_type: EventType, timestamp: int) -> NotificationRecord | None:
        record = self._records.get((event_type.value, timestamp))
        return record.model_copy(deep=True) if record is not None else None

    async def create_record(self, record: NotificationRecord) -> NotificationRecord:
        key = (record.type.value, record.timestamp)
        if key in self._records:
            raise StorageError(
                f"record already exists for {record.type.value}@{record.timestamp}",
                operation="create",
            )
        stored = record.model_copy(update={"id": self._next_id}, deep=True)
        self._next_id += 1
        self._records[key] = stored
        self._metrics.creates += 1
        return stored.model_copy(deep=True)

    async def mark_refreshed(self, record_id: int) -> None:
        for record in self._records.values():
            if record.id == record_id:
                record.refreshed = True
                self._metrics.updates += 1
                return
        raise StorageError(f"no record with id {record_id}", operation="update")

    async def list_subscribers_for_type(self, event_type: EventType) -> list[Subscriber]:
        return [
            copy.deepcopy(sub)
            for _, sub in sorted(self._subscribers.items())
            if sub.wants(event_type)
        ]

    async def write_back_message_id(
        self,
        subscriber_id: str,
        event_type: EventType,
        channel_id: str,
        message_id: str,
    ) -> None:
        subscriber = self._subscribers.get(subscriber_id)
        if subscriber is None:
            raise StorageError(f"unknown subscriber {subscriber_id}", operation="write_back")
        for setting in subscriber.settings:
            if setting.type == event_type and setting.channel_id == channel_id:
                setting.message_id = message_id
        self._metrics.write_backs += 1

    async def upsert_subscriber(self, subscriber: Subscriber) -> None:
        self._subscribers[subscriber.id] = copy.deepcopy(subscriber)

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        """Copy of the stored subscriber, or None."""
        subscriber = self._subscribers.get(subscriber_id)
        return copy.deepcopy(subscriber) if subscriber is not None else None

    def all_records(self) -> list[NotificationRecord]:
        """All records in insertion order."""
        return [r.model_copy(deep=True) for r in self._records.values()]
