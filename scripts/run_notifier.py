#!/usr/bin/env python3
"""
Run the event notifier.

Polls the event source every --interval-s seconds, tracks each occurrence's
lifecycle in SQLite and broadcasts notifications to subscribed channels.

Usage:
    python -m scripts.run_notifier --db notifier.db
    python -m scripts.run_notifier --db notifier.db --seed-subscribers subs.json
    python -m scripts.run_notifier --once --dry-run  # single tick, nothing sent

Environment:
    DISCORD_BOT_TOKEN  Bot token (required unless --dry-run)
    EVENT_SOURCE_URL   Event source API root (optional)

Subscribers file format (JSON list):
    [{"id": "123", "locale": "en",
      "settings": [{"type": "helltide", "channel_id": "456", "role_id": "789"}]}]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import orjson
from prometheus_client.registry import CollectorRegistry

from eventbeacon.contracts.events import DeliverySetting, EventType, Subscriber
from eventbeacon.delivery.broadcasters.discord import DiscordBroadcaster
from eventbeacon.delivery.config import DeliveryConfig, DiscordConfig
from eventbeacon.delivery.dispatcher import BroadcastDispatcher
from eventbeacon.delivery.resolver import RecipientResolver
from eventbeacon.lifecycle.tracker import LifecycleConfig, LifecycleTracker
from eventbeacon.logging_config import setup_logging
from eventbeacon.monitoring.exporter import MetricsExporter
from eventbeacon.monitoring.server import MonitoringServer
from eventbeacon.notifier import EventNotifier
from eventbeacon.scheduler import PeriodicTimer
from eventbeacon.source.client import SourceClient
from eventbeacon.source.types import SourceConfig
from eventbeacon.storage.sqlite import SqliteStore

logger = logging.getLogger(__name__)


@dataclass
class NotifierConfig:
    """Process-level configuration."""

    db_path: Path = Path("eventbeacon.db")
    interval_s: float = 60.0
    source_url: str = ""
    seed_subscribers: Path | None = None
    once: bool = False
    dry_run: bool = False
    metrics_port: int = 0

    def __post_init__(self) -> None:
        if not 1 <= self.interval_s <= 3600:
            msg = f"interval_s must be 1..3600, got {self.interval_s}"
            raise ValueError(msg)
        if not 0 <= self.metrics_port <= 65535:
            msg = f"metrics_port must be 0..65535, got {self.metrics_port}"
            raise ValueError(msg)
        if self.seed_subscribers is not None and not self.seed_subscribers.is_file():
            msg = f"subscribers file not found: {self.seed_subscribers}"
            raise ValueError(msg)


def parse_subscribers(raw: Any) -> list[Subscriber]:
    """Parse the subscribers seed file contents."""
    if not isinstance(raw, list):
        raise ValueError("subscribers file must contain a JSON list")
    subscribers = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValueError(f"subscriber entry must be an object, got {entry!r}")
        settings = [
            DeliverySetting(
                type=EventType(s["type"]),
                channel_id=s.get("channel_id"),
                role_id=s.get("role_id"),
                message_id=s.get("message_id"),
                enabled=bool(s.get("enabled", True)),
            )
            for s in entry.get("settings", [])
        ]
        subscribers.append(
            Subscriber(id=str(entry["id"]), locale=entry.get("locale", "en"), settings=settings)
        )
    return subscribers


async def seed_subscribers(store: SqliteStore, path: Path) -> int:
    subscribers = parse_subscribers(orjson.loads(path.read_bytes()))
    for subscriber in subscribers:
        await store.upsert_subscriber(subscriber)
    logger.info("Seeded subscribers", extra={"count": len(subscribers)})
    return len(subscribers)


async def run_notifier(config: NotifierConfig) -> int:
    """
    Wire up and run the notifier.

    Returns:
        Exit code (0 = success).
    """
    try:
        source_config = SourceConfig(base_url=config.source_url)
        delivery_config = DeliveryConfig(
            discord=DiscordConfig(enabled=not config.dry_run),
            dry_run=config.dry_run,
        )
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    store = SqliteStore(config.db_path)
    try:
        await store.open()
        if config.seed_subscribers is not None:
            try:
                await seed_subscribers(store, config.seed_subscribers)
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Invalid subscribers file %s: %s", config.seed_subscribers, e)
                return 2
        return await _serve(config, store, source_config, delivery_config)
    except Exception as e:
        logger.exception("Notifier failed: %s", e)
        return 1
    finally:
        await store.close()


async def _serve(
    config: NotifierConfig,
    store: SqliteStore,
    source_config: SourceConfig,
    delivery_config: DeliveryConfig,
) -> int:
    source = SourceClient(source_config)
    tracker = LifecycleTracker(store, LifecycleConfig())
    dispatcher = BroadcastDispatcher(
        RecipientResolver(store),
        store,
        DiscordBroadcaster(delivery_config.discord),
        delivery_config,
    )

    exporter: MetricsExporter | None = None
    if config.metrics_port > 0:
        exporter = MetricsExporter(registry=CollectorRegistry())

    notifier = EventNotifier(
        source,
        tracker,
        dispatcher,
        exporter=exporter,
        health_stale_after_s=config.interval_s * 3,
    )
    timer = PeriodicTimer(config.interval_s, notifier.tick)
    monitoring = (
        MonitoringServer(exporter.registry, notifier, port=config.metrics_port)
        if exporter is not None
        else None
    )

    try:
        if monitoring is not None:
            await monitoring.start()
        logger.info("Event notifier has been initialized")

        if config.once:
            await timer.run_once()
        else:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, timer.stop)
            await timer.run()
        return 0 if timer.failures == 0 else 1
    finally:
        if monitoring is not None:
            await monitoring.stop()
        await notifier.close()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run the event notifier.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=Path("eventbeacon.db"),
        help="SQLite database path (default: eventbeacon.db)",
    )
    parser.add_argument(
        "--interval-s",
        type=float,
        default=60.0,
        help="Seconds between ticks (default: 60)",
    )
    parser.add_argument(
        "--source-url",
        type=str,
        default="",
        help="Event source API root (default: EVENT_SOURCE_URL or built-in)",
    )
    parser.add_argument(
        "--seed-subscribers",
        type=Path,
        default=None,
        help="JSON file of subscribers to upsert before starting",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Track lifecycle and log messages without sending them",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=0,
        help="Prometheus /metrics and /healthz port (0 to disable, default: 0)",
    )
    parser.add_argument(
        "--log-json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="JSON log output (default: on)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.log_json,
    )

    try:
        config = NotifierConfig(
            db_path=args.db,
            interval_s=args.interval_s,
            source_url=args.source_url,
            seed_subscribers=args.seed_subscribers,
            once=args.once,
            dry_run=args.dry_run,
            metrics_port=args.metrics_port,
        )
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logger.info("Starting event notifier")
    logger.info("  Database: %s", config.db_path)
    logger.info("  Interval: %.0fs", config.interval_s)
    logger.info("  Mode: %s", "dry run" if config.dry_run else "live")

    return asyncio.run(run_notifier(config))


if __name__ == "__main__":
    sys.exit(main())
