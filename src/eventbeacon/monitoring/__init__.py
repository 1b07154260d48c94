"""Prometheus metrics and health endpoints."""

from eventbeacon.monitoring.exporter import REQUIRED_METRIC_NAMES, MetricsExporter
from eventbeacon.monitoring.server import HealthSource, MonitoringServer

__all__ = [
    "REQUIRED_METRIC_NAMES",
    "HealthSource",
    "MetricsExporter",
    "MonitoringServer",
]
