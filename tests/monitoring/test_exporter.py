"""
Tests for the Prometheus metrics exporter.
"""

from __future__ import annotations

import re

from prometheus_client import generate_latest
from prometheus_client.registry import CollectorRegistry

from eventbeacon.delivery.dispatcher import DeliveryMetrics
from eventbeacon.lifecycle.tracker import LifecycleMetrics
from eventbeacon.monitoring.exporter import REQUIRED_METRIC_NAMES, MetricsExporter
from eventbeacon.notifier import NotifierMetrics


def populated_metrics() -> tuple[NotifierMetrics, LifecycleMetrics, DeliveryMetrics]:
    notifier = NotifierMetrics(ticks=3, ticks_skipped=1, last_tick_ts=1_700_000_000.0)
    lifecycle = LifecycleMetrics(persistence_failures=1)
    lifecycle.decisions = {"notify": 2, "handled": 4}
    delivery = DeliveryMetrics(total_failed=1, write_back_failures=1)
    delivery.by_type = {"helltide": 2}
    return notifier, lifecycle, delivery


def sample(registry: CollectorRegistry, name: str, labels: dict[str, str] | None = None) -> float:
    value = registry.get_sample_value(name, labels or {})
    assert value is not None, name
    return value


class TestMetricsExporter:
    def test_required_metric_names_present(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        nm, lm, dm = populated_metrics()

        exporter.update(notifier_metrics=nm, lifecycle_metrics=lm, delivery_metrics=dm)

        output = generate_latest(registry).decode("utf-8")
        exported = set(re.findall(r"^(eventbeacon_\w+?)(?:\{|\s)", output, re.MULTILINE))
        assert REQUIRED_METRIC_NAMES <= exported

    def test_counters_follow_totals_by_delta(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        nm, lm, dm = populated_metrics()

        exporter.update(notifier_metrics=nm, lifecycle_metrics=lm, delivery_metrics=dm)
        exporter.update(notifier_metrics=nm, lifecycle_metrics=lm, delivery_metrics=dm)
        assert sample(registry, "eventbeacon_ticks_total") == 3

        nm.ticks = 5
        lm.decisions["notify"] = 3
        exporter.update(notifier_metrics=nm, lifecycle_metrics=lm)

        assert sample(registry, "eventbeacon_ticks_total") == 5
        assert sample(
            registry, "eventbeacon_lifecycle_decisions_total", {"decision": "notify"}
        ) == 3
        assert sample(
            registry, "eventbeacon_deliveries_total", {"event_type": "helltide"}
        ) == 2

    def test_last_tick_gauge(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        nm, _, _ = populated_metrics()

        exporter.update(notifier_metrics=nm)

        assert sample(registry, "eventbeacon_last_tick_timestamp_seconds") == 1_700_000_000.0

    def test_reset_counter_tracking(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        nm, _, _ = populated_metrics()

        exporter.update(notifier_metrics=nm)
        exporter.reset_counter_tracking()
        exporter.update(notifier_metrics=nm)

        # Totals are re-applied after a reset; Prometheus counters only grow
        assert sample(registry, "eventbeacon_ticks_total") == 6

    def test_only_event_type_and_decision_labels(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        nm, lm, dm = populated_metrics()
        exporter.update(notifier_metrics=nm, lifecycle_metrics=lm, delivery_metrics=dm)

        output = generate_latest(registry).decode("utf-8")
        labels = set(re.findall(r"(\w+)=\"", output))

        assert labels <= {"decision", "event_type"}
