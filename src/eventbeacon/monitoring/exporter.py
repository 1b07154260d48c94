"""
Prometheus metrics exporter for the event notifier.

Exports low-cardinality metrics only. The single label in use is the event
type, which has a fixed, small set of values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from eventbeacon.delivery.dispatcher import DeliveryMetrics
    from eventbeacon.lifecycle.tracker import LifecycleMetrics
    from eventbeacon.notifier import NotifierMetrics


class MetricsExporter:
    """
    Syncs internal metric dataclasses into a Prometheus registry.

    Internal counters are cumulative totals; the exporter tracks the last
    value it saw and increments Prometheus counters by the delta.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(notifier_metrics=nm, lifecycle_metrics=lm, delivery_metrics=dm)
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        # === Tick metrics ===
        self._ticks = Counter(
            "eventbeacon_ticks",
            "Total notifier ticks run",
            registry=self._registry,
        )
        self._ticks_skipped = Counter(
            "eventbeacon_ticks_skipped",
            "Ticks ended early because the source was unavailable",
            registry=self._registry,
        )
        self._last_tick_ts = Gauge(
            "eventbeacon_last_tick_timestamp_seconds",
            "Start time of the most recent tick",
            registry=self._registry,
        )

        # === Lifecycle metrics ===
        self._decisions = Counter(
            "eventbeacon_lifecycle_decisions",
            "Lifecycle decisions by outcome",
            ["decision"],
            registry=self._registry,
        )
        self._persistence_failures = Counter(
            "eventbeacon_persistence_failures",
            "Lifecycle record reads/writes that failed",
            registry=self._registry,
        )

        # === Delivery metrics ===
        self._delivered = Counter(
            "eventbeacon_deliveries",
            "Messages created or edited successfully",
            ["event_type"],
            registry=self._registry,
        )
        self._delivery_failures = Counter(
            "eventbeacon_delivery_failures",
            "Deliveries that failed",
            registry=self._registry,
        )
        self._write_back_failures = Counter(
            "eventbeacon_write_back_failures",
            "Message id write-backs that failed",
            registry=self._registry,
        )

        self._last: dict[str, int] = {}

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    def _inc_delta(self, key: str, counter: Counter, current: int) -> None:
        delta = current - self._last.get(key, 0)
        if delta > 0:
            counter.inc(delta)
        self._last[key] = current

    def update(
        self,
        notifier_metrics: NotifierMetrics | None = None,
        lifecycle_metrics: LifecycleMetrics | None = None,
        delivery_metrics: DeliveryMetrics | None = None,
    ) -> None:
        """Update Prometheus metrics from component metric snapshots."""
        if notifier_metrics is not None:
            self._inc_delta("ticks", self._ticks, notifier_metrics.ticks)
            self._inc_delta("ticks_skipped", self._ticks_skipped, notifier_metrics.ticks_skipped)
            self._last_tick_ts.set(notifier_metrics.last_tick_ts)

        if lifecycle_metrics is not None:
            for decision, count in lifecycle_metrics.decisions.items():
                self._inc_delta(
                    f"decision:{decision}", self._decisions.labels(decision=decision), count
                )
            self._inc_delta(
                "persistence_failures",
                self._persistence_failures,
                lifecycle_metrics.persistence_failures,
            )

        if delivery_metrics is not None:
            for event_type, count in delivery_metrics.by_type.items():
                self._inc_delta(
                    f"delivered:{event_type}",
                    self._delivered.labels(event_type=event_type),
                    count,
                )
            self._inc_delta(
                "delivery_failures", self._delivery_failures, delivery_metrics.total_failed
            )
            self._inc_delta(
                "write_back_failures",
                self._write_back_failures,
                delivery_metrics.write_back_failures,
            )

    def reset_counter_tracking(self) -> None:
        """
        Reset internal counter tracking.

        Does NOT reset the Prometheus counters themselves.
        """
        self._last.clear()


# Counters are exported with _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {
        "eventbeacon_ticks_total",
        "eventbeacon_ticks_skipped_total",
        "eventbeacon_last_tick_timestamp_seconds",
        "eventbeacon_lifecycle_decisions_total",
        "eventbeacon_persistence_failures_total",
        "eventbeacon_deliveries_total",
        "eventbeacon_delivery_failures_total",
        "eventbeacon_write_back_failures_total",
    }
)
