"""
Tests for the event source client.

The aiohttp session is replaced with mocks.
"""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from eventbeacon.contracts.events import EventType
from eventbeacon.source.client import SourceClient, parse_events
from eventbeacon.source.types import DEFAULT_SOURCE_URL, SourceConfig

T0 = 1_700_000_000


def make_response(status: int, body: Any = None, raw: bytes | None = None) -> AsyncMock:
    response = AsyncMock()
    response.status = status
    response.read = AsyncMock(return_value=raw if raw is not None else orjson.dumps(body))
    response.text = AsyncMock(return_value="server error")
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def make_client(*responses: AsyncMock) -> tuple[SourceClient, AsyncMock]:
    client = SourceClient(SourceConfig(base_url="https://source.test/api"))
    session = AsyncMock()
    session.get = MagicMock(side_effect=list(responses))
    session.closed = False
    client._session = session
    return client, session


class TestSourceConfig:
    def test_default_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("EVENT_SOURCE_URL", raising=False)
        config = SourceConfig()
        assert config.base_url == DEFAULT_SOURCE_URL
        assert config.events_url == f"{DEFAULT_SOURCE_URL}/events/recent"

    def test_url_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EVENT_SOURCE_URL", "http://localhost:8000/")
        config = SourceConfig()
        assert config.status_url == "http://localhost:8000/status"

    def test_rejects_non_http_url(self) -> None:
        with pytest.raises(ValueError, match="http"):
            SourceConfig(base_url="ftp://example.test")

    def test_rejects_bad_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout_s"):
            SourceConfig(base_url="https://source.test", timeout_s=0)


class TestFetchStatus:
    @pytest.mark.asyncio
    async def test_available(self) -> None:
        client, session = make_client(make_response(200, {"event_service": True}))

        status = await client.fetch_status()

        assert status is not None and status.service_available is True
        session.get.assert_called_once_with("https://source.test/api/status")

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        client, _ = make_client(make_response(503))

        assert await client.fetch_status() is None

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        client, _ = make_client(make_response(200, raw=b"<html>"))

        assert await client.fetch_status() is None

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        client = SourceClient(SourceConfig(base_url="https://source.test/api"))
        session = AsyncMock()
        session.get = MagicMock(side_effect=asyncio.TimeoutError())
        session.closed = False
        client._session = session

        assert await client.fetch_status() is None

    @pytest.mark.asyncio
    async def test_non_object_payload(self) -> None:
        client, _ = make_client(make_response(200, [1, 2]))

        assert await client.fetch_status() is None


class TestFetchEvents:
    @pytest.mark.asyncio
    async def test_parses_known_kinds(self) -> None:
        body = {
            "helltide": {"timestamp": T0, "refresh": T0 + 600, "zone": "scos"},
            "boss": {"timestamp": T0 + 1800, "name": "Ashava"},
            "legion": {"timestamp": T0 + 900},
        }
        client, session = make_client(make_response(200, body))

        events = await client.fetch_events()

        assert events is not None
        assert set(events) == {EventType.HELLTIDE, EventType.WORLD_BOSS, EventType.LEGION}
        assert events[EventType.HELLTIDE].refresh_timestamp == T0 + 600
        session.get.assert_called_once_with("https://source.test/api/events/recent")

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        client, _ = make_client(make_response(500))

        assert await client.fetch_events() is None

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        client, session = make_client()

        await client.close()

        session.close.assert_awaited_once()


class TestParseEvents:
    def test_unknown_kind_ignored(self) -> None:
        events = parse_events({"whispers": {"timestamp": T0}, "legion": {"timestamp": T0}})

        assert list(events) == [EventType.LEGION]

    def test_malformed_entries_skipped(self) -> None:
        events = parse_events(
            {
                "helltide": "not an object",
                "boss": {"name": "Ashava"},
                "legion": {"timestamp": T0},
            }
        )

        assert list(events) == [EventType.LEGION]

    def test_missing_kind_absent(self) -> None:
        assert parse_events({"helltide": {"timestamp": T0}}).get(EventType.WORLD_BOSS) is None
