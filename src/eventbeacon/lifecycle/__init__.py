"""Occurrence lifecycle tracking."""

from eventbeacon.lifecycle.tracker import (
    Decision,
    LifecycleConfig,
    LifecycleDecision,
    LifecycleMetrics,
    LifecycleTracker,
)

__all__ = [
    "Decision",
    "LifecycleConfig",
    "LifecycleDecision",
    "LifecycleMetrics",
    "LifecycleTracker",
]
