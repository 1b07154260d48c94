"""
Monitoring endpoints for the notifier process.

GET /metrics  Prometheus exposition of the notifier registry.
GET /healthz  The notifier's HealthSnapshot as JSON; 503 once ticks go stale.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import orjson
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

if TYPE_CHECKING:
    from prometheus_client.registry import CollectorRegistry

    from eventbeacon.notifier import HealthSnapshot

logger = logging.getLogger(__name__)


class HealthSource(Protocol):
    def health(self) -> HealthSnapshot: ...


class MonitoringServer:
    """Serves /metrics and /healthz for one notifier."""

    def __init__(
        self,
        registry: CollectorRegistry,
        source: HealthSource,
        *,
        host: str = "0.0.0.0",
        port: int = 9090,
    ) -> None:
        self._registry = registry
        self._source = source
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None

        self.app = web.Application()
        self.app.router.add_get("/metrics", self._metrics)
        self.app.router.add_get("/healthz", self._healthz)

    async def _metrics(self, request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(self._registry),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    async def _healthz(self, request: web.Request) -> web.Response:
        snapshot = self._source.health()
        return web.Response(
            status=200 if snapshot.healthy else 503,
            body=orjson.dumps(snapshot),
            content_type="application/json",
        )

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        await web.TCPSite(self._runner, self._host, self._port).start()
        logger.info("Monitoring server listening", extra={"port": self._port})

    async def stop(self) -> None:
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        logger.info("Monitoring server stopped")
