"""
Notification delivery.

Resolves subscribers for an event type, renders per-setting messages and
broadcasts them, editing previous messages in place where possible.
"""

from __future__ import annotations

from eventbeacon.delivery.config import DeliveryConfig, DiscordConfig
from eventbeacon.delivery.dispatcher import BroadcastDispatcher, DispatchReport
from eventbeacon.delivery.renderer import DefaultRenderer, OutboundMessage, build_message, render
from eventbeacon.delivery.resolver import RecipientResolver

__all__ = [
    "BroadcastDispatcher",
    "DefaultRenderer",
    "DeliveryConfig",
    "DiscordConfig",
    "DispatchReport",
    "OutboundMessage",
    "RecipientResolver",
    "build_message",
    "render",
]
