"""
Message broadcasters.

Implementations that turn an OutboundMessage into a created or edited message.
"""

from __future__ import annotations

from eventbeacon.delivery.broadcasters.base import Broadcaster
from eventbeacon.delivery.broadcasters.discord import DiscordBroadcaster

__all__ = [
    "Broadcaster",
    "DiscordBroadcaster",
]
