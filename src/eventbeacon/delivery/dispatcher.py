"""
Broadcast dispatcher.

Turns a notify- or refresh-trigger into one create/edit per subscriber per
matching delivery setting, and writes the resulting message id back so the
next notification for the same type edits that message.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from eventbeacon.delivery.renderer import DefaultRenderer, Renderer, build_message

if TYPE_CHECKING:
    from eventbeacon.contracts.events import DeliverySetting, Event, Subscriber
    from eventbeacon.delivery.broadcasters.base import Broadcaster
    from eventbeacon.delivery.config import DeliveryConfig
    from eventbeacon.delivery.resolver import RecipientResolver
    from eventbeacon.storage.base import SubscriberStore

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """Outcome counts for one dispatch."""

    subscribers: int = 0
    delivered: int = 0
    failed: int = 0
    skipped: int = 0

    def merge(self, other: DispatchReport) -> None:
        self.delivered += other.delivered
        self.failed += other.failed
        self.skipped += other.skipped


@dataclass
class DeliveryMetrics:
    """Metrics for delivery operations."""

    total_dispatches: int = 0
    total_delivered: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    write_back_failures: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class BroadcastDispatcher:
    """
    Delivers one event to every subscriber configured for its type.

    Subscribers are handled concurrently; settings within a subscriber run in
    order. A failure for one subscriber or setting never affects the others.
    """

    def __init__(
        self,
        resolver: RecipientResolver,
        store: SubscriberStore,
        broadcaster: Broadcaster,
        config: DeliveryConfig,
        renderer: Renderer | None = None,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._broadcaster = broadcaster
        self._config = config
        self._renderer = renderer or DefaultRenderer()
        self._metrics = DeliveryMetrics()

    @property
    def metrics(self) -> DeliveryMetrics:
        """Get current delivery metrics."""
        return self._metrics

    async def dispatch(self, event: Event, *, refresh: bool = False) -> DispatchReport:
        """
        Broadcast an event to all subscribers of its type.

        Args:
            event: Occurrence to announce.
            refresh: True for the refresh-trigger, False for the first notification.

        Returns:
            DispatchReport with delivered/failed/skipped counts.
        """
        report = DispatchReport()
        self._metrics.total_dispatches += 1

        try:
            subscribers = await self._resolver.list_subscribers(event.type)
        except Exception as e:
            logger.error(
                "Failed to list subscribers",
                extra={"event_type": event.type.value, "error": str(e)},
            )
            return report

        report.subscribers = len(subscribers)
        logger.info(
            "Found subscribers for event",
            extra={"event_type": event.type.value, "subscribers": len(subscribers)},
        )

        results = await asyncio.gather(
            *[self._deliver_to_subscriber(sub, event, refresh) for sub in subscribers],
            return_exceptions=True,
        )

        for subscriber, result in zip(subscribers, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Subscriber delivery exception",
                    extra={"subscriber_id": subscriber.id, "error": str(result)},
                )
                report.failed += 1
            else:
                report.merge(result)

        self._metrics.total_delivered += report.delivered
        self._metrics.total_failed += report.failed
        self._metrics.total_skipped += report.skipped
        self._metrics.by_type[event.type.value] = (
            self._metrics.by_type.get(event.type.value, 0) + report.delivered
        )

        logger.info(
            "Event broadcast finished",
            extra={
                "event_type": event.type.value,
                "refresh": refresh,
                "delivered": report.delivered,
                "failed": report.failed,
                "skipped": report.skipped,
            },
        )
        return report

    async def _deliver_to_subscriber(
        self, subscriber: Subscriber, event: Event, refresh: bool
    ) -> DispatchReport:
        report = DispatchReport()
        title = self._renderer(event.type, event, subscriber.locale, refresh=refresh)

        for setting in subscriber.settings_for(event.type):
            try:
                outcome = await self._deliver_setting(subscriber, setting, event, title)
            except Exception as e:
                logger.error(
                    "Delivery failed",
                    extra={
                        "subscriber_id": subscriber.id,
                        "channel_id": setting.channel_id,
                        "error": str(e),
                    },
                )
                outcome = "failed"

            if outcome == "delivered":
                report.delivered += 1
            elif outcome == "skipped":
                report.skipped += 1
            else:
                report.failed += 1

        return report

    async def _deliver_setting(
        self,
        subscriber: Subscriber,
        setting: DeliverySetting,
        event: Event,
        title: str,
    ) -> str:
        """Deliver to one setting. Returns "delivered", "skipped" or "failed"."""
        if not setting.channel_id:
            logger.info(
                "Event has no channel set, skipping",
                extra={"subscriber_id": subscriber.id, "event_type": event.type.value},
            )
            return "skipped"

        message = build_message(title, setting.role_id)

        if self._config.dry_run:
            logger.info(
                "Dry run delivery",
                extra={
                    "subscriber_id": subscriber.id,
                    "channel_id": setting.channel_id,
                    "edit": bool(setting.message_id),
                    "text": message.content[:200],
                },
            )
            return "delivered"

        message_id = await self._broadcaster.broadcast(
            setting.channel_id, message, setting.message_id
        )
        if message_id is None:
            logger.warning(
                "Broadcast returned no message",
                extra={"subscriber_id": subscriber.id, "channel_id": setting.channel_id},
            )
            return "failed"

        setting.message_id = message_id
        try:
            await self._store.write_back_message_id(
                subscriber.id, event.type, setting.channel_id, message_id
            )
        except Exception as e:
            self._metrics.write_back_failures += 1
            logger.error(
                "Failed to store message id",
                extra={
                    "subscriber_id": subscriber.id,
                    "channel_id": setting.channel_id,
                    "error": str(e),
                },
            )
        return "delivered"

    async def close(self) -> None:
        """Close the broadcaster."""
        await self._broadcaster.close()
