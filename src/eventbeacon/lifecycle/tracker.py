"""Lifecycle tracker: per-occurrence deduplication and refresh state machine.

Each occurrence is identified by (type, timestamp) and moves through:

- Unseen: no record. A kind with a grace rule waits until the occurrence has
  been live for ``grace_period_s`` before a record is written.
- Created: record written with refreshed=False. Creation is the notify-trigger,
  unless the occurrence is already older than ``stale_after_s``, in which case
  the record is kept but no broadcast fires.
- Refreshed: for occurrences with a refresh phase, once now is inside
  [timestamp, timestamp + refresh_window_s] and past refresh_timestamp the
  record is marked refreshed. This is the refresh-trigger.

Records without a refresh phase, or already refreshed, are never re-notified.

Persistence failures of any kind (StorageError or a driver error) are logged
and do not change the decision: the
notification still goes out for this tick even if the record did not stick,
which can cause a duplicate on a later tick.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from eventbeacon.contracts.events import Event, EventType, NotificationRecord

if TYPE_CHECKING:
    from eventbeacon.storage.base import NotificationStore

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    """Outcome of evaluating one occurrence on one tick."""

    NOTIFY = "notify"  # First sighting, broadcast
    REFRESH = "refresh"  # Refresh phase reached, broadcast again
    WAIT_GRACE = "wait_grace"  # Too recent, nothing written yet
    STALE = "stale"  # Record created but too old to announce
    NOT_DUE = "not_due"  # Refresh phase pending or window closed
    HANDLED = "handled"  # Fully handled already

    @property
    def triggers_broadcast(self) -> bool:
        return self in (Decision.NOTIFY, Decision.REFRESH)


@dataclass
class LifecycleConfig:
    """Timing rules for the lifecycle tracker.

    Attributes:
        grace_period_s: Minimum age before acting on a new occurrence (grace kinds only).
        stale_after_s: First sightings older than this are recorded but not announced.
        refresh_window_s: Refresh can only fire within this long after the start.
        grace_types: Kinds subject to the grace period.
        refresh_types: Kinds whose refresh_timestamp is tracked.
    """

    grace_period_s: int = 30
    stale_after_s: int = 300
    refresh_window_s: int = 3600
    grace_types: frozenset[EventType] = frozenset({EventType.HELLTIDE})
    refresh_types: frozenset[EventType] = frozenset({EventType.HELLTIDE})

    def __post_init__(self) -> None:
        if self.grace_period_s < 0:
            raise ValueError(f"grace_period_s must be >= 0, got {self.grace_period_s}")
        if self.stale_after_s < 0:
            raise ValueError(f"stale_after_s must be >= 0, got {self.stale_after_s}")
        if self.refresh_window_s <= 0:
            raise ValueError(f"refresh_window_s must be > 0, got {self.refresh_window_s}")


@dataclass(frozen=True)
class LifecycleDecision:
    """Decision for one occurrence, with the record it was based on."""

    decision: Decision
    event: Event
    record: NotificationRecord | None = None
    persisted: bool = True


@dataclass
class LifecycleMetrics:
    """Counters for tracker decisions."""

    evaluated: int = 0
    notify_triggers: int = 0
    refresh_triggers: int = 0
    grace_waits: int = 0
    stale_suppressed: int = 0
    persistence_failures: int = 0
    decisions: dict[str, int] = field(default_factory=dict)

    def record(self, decision: Decision) -> None:
        self.evaluated += 1
        self.decisions[decision.value] = self.decisions.get(decision.value, 0) + 1
        if decision is Decision.NOTIFY:
            self.notify_triggers += 1
        elif decision is Decision.REFRESH:
            self.refresh_triggers += 1
        elif decision is Decision.WAIT_GRACE:
            self.grace_waits += 1
        elif decision is Decision.STALE:
            self.stale_suppressed += 1


class LifecycleTracker:
    """Decides create / refresh / skip for each fetched occurrence."""

    def __init__(
        self,
        store: NotificationStore,
        config: LifecycleConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config or LifecycleConfig()
        self._clock = clock
        self._metrics = LifecycleMetrics()

    @property
    def config(self) -> LifecycleConfig:
        return self._config

    @property
    def metrics(self) -> LifecycleMetrics:
        return self._metrics

    async def evaluate(self, event: Event) -> LifecycleDecision:
        """
        Evaluate one occurrence against its persisted record.

        Writes the record on first sighting and marks it refreshed when the
        refresh phase fires. Never raises for storage failures.
        """
        try:
            record = await self._store.find_record(event.type, event.timestamp)
        except Exception as e:
            logger.error(
                "Failed to look up event record",
                extra={"event_type": event.type.value, "ts": event.timestamp, "error": str(e)},
            )
            return self._decide(LifecycleDecision(Decision.HANDLED, event, persisted=False))

        if record is None:
            return self._decide(await self._on_first_sighting(event))
        if record.has_refresh_phase and not record.refreshed:
            return self._decide(await self._on_refresh_pending(event, record))
        return self._decide(LifecycleDecision(Decision.HANDLED, event, record))

    def _decide(self, result: LifecycleDecision) -> LifecycleDecision:
        self._metrics.record(result.decision)
        if not result.persisted:
            self._metrics.persistence_failures += 1
        return result

    async def _on_first_sighting(self, event: Event) -> LifecycleDecision:
        now = self._clock()
        cfg = self._config

        if event.type in cfg.grace_types and now < event.timestamp + cfg.grace_period_s:
            logger.info(
                "Event is too recent, waiting",
                extra={"event_type": event.type.value, "ts": event.timestamp},
            )
            return LifecycleDecision(Decision.WAIT_GRACE, event)

        record = NotificationRecord(
            type=event.type,
            timestamp=event.timestamp,
            refresh_timestamp=event.refresh_timestamp if event.type in cfg.refresh_types else 0,
            payload=event.payload,
        )
        persisted = True
        try:
            record = await self._store.create_record(record)
        except Exception as e:
            persisted = False
            logger.error(
                "Failed to create event record",
                extra={"event_type": event.type.value, "ts": event.timestamp, "error": str(e)},
            )

        if now > event.timestamp + cfg.stale_after_s:
            logger.info(
                "Event is too old, skipping broadcast",
                extra={"event_type": event.type.value, "ts": event.timestamp},
            )
            return LifecycleDecision(Decision.STALE, event, record, persisted)

        return LifecycleDecision(Decision.NOTIFY, event, record, persisted)

    async def _on_refresh_pending(
        self, event: Event, record: NotificationRecord
    ) -> LifecycleDecision:
        now = self._clock()
        start = record.timestamp
        end = start + self._config.refresh_window_s

        if not (start <= now <= end) or now < record.refresh_timestamp:
            logger.debug(
                "Event is not ready to be refreshed",
                extra={"event_type": event.type.value, "refresh_ts": record.refresh_timestamp},
            )
            return LifecycleDecision(Decision.NOT_DUE, event, record)

        persisted = True
        if record.id is None:
            persisted = False
            logger.error(
                "Cannot mark record refreshed without an id",
                extra={"event_type": event.type.value, "ts": event.timestamp},
            )
        else:
            try:
                await self._store.mark_refreshed(record.id)
            except Exception as e:
                persisted = False
                logger.error(
                    "Failed to mark event refreshed",
                    extra={"event_type": event.type.value, "ts": event.timestamp, "error": str(e)},
                )

        refreshed = record.model_copy(update={"refreshed": True})
        return LifecycleDecision(Decision.REFRESH, event, refreshed, persisted)
