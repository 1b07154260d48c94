"""Event source gateway."""

from eventbeacon.source.client import SourceClient, parse_events
from eventbeacon.source.types import SourceConfig

__all__ = ["SourceClient", "SourceConfig", "parse_events"]
