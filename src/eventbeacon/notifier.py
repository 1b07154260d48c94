"""
Event notifier: one tick of the polling pipeline.

SourceClient → LifecycleTracker → BroadcastDispatcher.

Status and events are fetched concurrently. Event types are then processed
one after another; each type's evaluate-then-broadcast sequence completes
before the next type starts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from eventbeacon.contracts.events import EventType
from eventbeacon.errors import SourceUnavailable
from eventbeacon.lifecycle.tracker import Decision

if TYPE_CHECKING:
    from eventbeacon.contracts.events import Event
    from eventbeacon.delivery.dispatcher import BroadcastDispatcher
    from eventbeacon.lifecycle.tracker import LifecycleTracker
    from eventbeacon.monitoring.exporter import MetricsExporter
    from eventbeacon.source.client import SourceClient

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """What happened during one tick."""

    started_at: float
    outcome: str = "ok"  # "ok" or "skipped:<reason>"
    decisions: dict[str, str] = field(default_factory=dict)  # event type -> decision
    delivered: int = 0
    failed: int = 0

    @property
    def skipped(self) -> bool:
        return self.outcome != "ok"


@dataclass
class NotifierMetrics:
    """Aggregated metrics across ticks."""

    ticks: int = 0
    ticks_skipped: int = 0
    broadcasts: int = 0
    deliveries_ok: int = 0
    deliveries_failed: int = 0
    type_errors: int = 0
    last_tick_ts: float = 0.0
    last_outcome: str = ""


@dataclass
class HealthSnapshot:
    """Point-in-time liveness view served on /healthz."""

    status: str  # "ok" or "stale"
    ticks: int
    ticks_skipped: int
    broadcasts: int
    deliveries_ok: int
    deliveries_failed: int
    last_tick: TickReport | None = None

    @property
    def healthy(self) -> bool:
        return self.status == "ok"


class EventNotifier:
    """
    Runs the per-tick control flow.

    All collaborators are passed in; nothing is looked up globally.
    """

    def __init__(
        self,
        source: SourceClient,
        tracker: LifecycleTracker,
        dispatcher: BroadcastDispatcher,
        *,
        exporter: MetricsExporter | None = None,
        clock: Callable[[], float] = time.time,
        health_stale_after_s: float = 180.0,
    ) -> None:
        self._source = source
        self._tracker = tracker
        self._dispatcher = dispatcher
        self._exporter = exporter
        self._clock = clock
        self._health_stale_after_s = health_stale_after_s
        self._started_at = clock()
        self._metrics = NotifierMetrics()
        self._last_report: TickReport | None = None

    @property
    def metrics(self) -> NotifierMetrics:
        return self._metrics

    async def tick(self) -> TickReport:
        """Poll the source once and notify for every due transition."""
        report = TickReport(started_at=self._clock())
        logger.info("Refreshing events")

        try:
            events = await self._fetch()
        except SourceUnavailable as e:
            logger.info("Skipping tick", extra={"reason": e.reason})
            report.outcome = f"skipped:{e.reason}"
            self._finish(report)
            return report

        # Declaration order keeps processing deterministic
        for event_type in EventType:
            event = events.get(event_type)
            if event is None:
                continue
            try:
                await self._process(event, report)
            except Exception as e:
                self._metrics.type_errors += 1
                logger.exception(
                    "Failed to process event",
                    extra={"event_type": event_type.value, "error": str(e)},
                )

        self._finish(report)
        return report

    async def _fetch(self) -> dict[EventType, Event]:
        status, events = await asyncio.gather(
            self._source.fetch_status(),
            self._source.fetch_events(),
        )
        if status is None:
            raise SourceUnavailable("status_unavailable")
        if not status.service_available:
            raise SourceUnavailable("service_down")
        if events is None:
            raise SourceUnavailable("no_events")
        return events

    async def _process(self, event: Event, report: TickReport) -> None:
        result = await self._tracker.evaluate(event)
        report.decisions[event.type.value] = result.decision.value

        if not result.decision.triggers_broadcast:
            return

        dispatch = await self._dispatcher.dispatch(
            event, refresh=result.decision is Decision.REFRESH
        )
        self._metrics.broadcasts += 1
        report.delivered += dispatch.delivered
        report.failed += dispatch.failed

    def _finish(self, report: TickReport) -> None:
        m = self._metrics
        m.ticks += 1
        if report.skipped:
            m.ticks_skipped += 1
        m.deliveries_ok += report.delivered
        m.deliveries_failed += report.failed
        m.last_tick_ts = report.started_at
        m.last_outcome = report.outcome
        self._last_report = report

        if self._exporter is not None:
            self._exporter.update(
                notifier_metrics=m,
                lifecycle_metrics=self._tracker.metrics,
                delivery_metrics=self._dispatcher.metrics,
            )

    def health(self) -> HealthSnapshot:
        """Liveness snapshot.

        Status is "stale" when no tick has started within health_stale_after_s.
        """
        m = self._metrics
        last_seen = m.last_tick_ts or self._started_at
        stale = self._clock() - last_seen > self._health_stale_after_s
        return HealthSnapshot(
            status="stale" if stale else "ok",
            ticks=m.ticks,
            ticks_skipped=m.ticks_skipped,
            broadcasts=m.broadcasts,
            deliveries_ok=m.deliveries_ok,
            deliveries_failed=m.deliveries_failed,
            last_tick=self._last_report,
        )

    async def close(self) -> None:
        await self._source.close()
        await self._dispatcher.close()
