"""
Data contracts for the event notifier.

Event and ServiceStatus are rebuilt from the source on every tick and are
immutable. NotificationRecord is what the lifecycle tracker persists.
Subscriber and DeliverySetting belong to the recipient store; the dispatcher
only updates DeliverySetting.message_id after a successful send.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Kinds of timed events published by the source."""

    HELLTIDE = "helltide"
    WORLD_BOSS = "boss"
    LEGION = "legion"


class ServiceStatus(BaseModel):
    """Availability of the source's event service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service_available: bool = Field(
        default=False,
        alias="event_service",
        description="Whether the event service is currently publishing",
    )


class Event(BaseModel):
    """
    One occurrence of an event type as seen on a single tick.

    Attributes:
        type: Event kind.
        timestamp: Start of the occurrence (epoch seconds).
        refresh_timestamp: When the second notification is due (epoch seconds),
            0 when the occurrence has no refresh phase.
        payload: Raw source object, opaque to the lifecycle engine.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: EventType = Field(..., description="Event kind")
    timestamp: int = Field(..., ge=0, description="Occurrence start (s)")
    refresh_timestamp: int = Field(default=0, ge=0, description="Refresh due time (s)")
    payload: dict[str, Any] = Field(default_factory=dict, description="Raw source data")

    @classmethod
    def from_source(cls, event_type: EventType, raw: dict[str, Any]) -> Event:
        """Build an Event from one entry of the source events payload."""
        return cls(
            type=event_type,
            timestamp=int(raw["timestamp"]),
            refresh_timestamp=int(raw.get("refresh") or 0),
            payload=dict(raw),
        )

    @property
    def key(self) -> tuple[str, int]:
        """Occurrence identity: (type, timestamp)."""
        return (self.type.value, self.timestamp)


class NotificationRecord(BaseModel):
    """
    Persisted lifecycle state for one occurrence.

    At most one record exists per (type, timestamp). ``refreshed`` only ever
    moves from False to True.
    """

    model_config = ConfigDict(extra="forbid")

    id: int | None = Field(default=None, description="Store-assigned identifier")
    type: EventType = Field(..., description="Event kind")
    timestamp: int = Field(..., ge=0, description="Occurrence start (s)")
    refresh_timestamp: int = Field(default=0, ge=0, description="Refresh due time (s)")
    refreshed: bool = Field(default=False, description="Refresh notification already sent")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event data at creation")

    @property
    def has_refresh_phase(self) -> bool:
        return self.refresh_timestamp > 0

    def payload_json(self) -> bytes:
        """Serialize the stored payload using orjson."""
        return orjson.dumps(self.payload)


@dataclass
class DeliverySetting:
    """
    One subscriber's delivery configuration for a single event type.

    Attributes:
        type: Event kind this setting listens to.
        channel_id: Target channel; settings without one are skipped.
        role_id: Optional role to mention.
        message_id: Last message sent for this type (edited on refresh).
        enabled: Disabled settings are ignored by the resolver.
    """

    type: EventType
    channel_id: str | None = None
    role_id: str | None = None
    message_id: str | None = None
    enabled: bool = True


@dataclass
class Subscriber:
    """A recipient (guild) with per-event-type delivery settings."""

    id: str
    locale: str = "en"
    settings: list[DeliverySetting] = field(default_factory=list)

    def settings_for(self, event_type: EventType) -> list[DeliverySetting]:
        """Enabled settings for an event type, in stored order."""
        return [s for s in self.settings if s.type == event_type and s.enabled]

    def wants(self, event_type: EventType) -> bool:
        return bool(self.settings_for(event_type))
