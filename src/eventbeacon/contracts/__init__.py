"""Data contracts shared between the notifier modules."""

from eventbeacon.contracts.events import (
    DeliverySetting,
    Event,
    EventType,
    NotificationRecord,
    ServiceStatus,
    Subscriber,
)

__all__ = [
    "DeliverySetting",
    "Event",
    "EventType",
    "NotificationRecord",
    "ServiceStatus",
    "Subscriber",
]
