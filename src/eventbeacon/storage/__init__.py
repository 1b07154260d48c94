"""Persistence for lifecycle records and subscribers."""

from eventbeacon.storage.base import NotificationStore, SubscriberStore
from eventbeacon.storage.memory import InMemoryStore
from eventbeacon.storage.sqlite import SqliteStore

__all__ = [
    "InMemoryStore",
    "NotificationStore",
    "SqliteStore",
    "SubscriberStore",
]
