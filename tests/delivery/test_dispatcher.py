"""
Tests for the broadcast dispatcher and recipient resolver.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from eventbeacon.contracts.events import DeliverySetting, Event, EventType, Subscriber
from eventbeacon.delivery.config import DeliveryConfig
from eventbeacon.delivery.dispatcher import BroadcastDispatcher
from eventbeacon.delivery.renderer import OutboundMessage
from eventbeacon.delivery.resolver import RecipientResolver
from eventbeacon.storage.memory import InMemoryStore

T0 = 1_700_000_000


def make_event(event_type: EventType = EventType.HELLTIDE) -> Event:
    """Helper to create test events."""
    return Event(type=event_type, timestamp=T0, refresh_timestamp=T0 + 600, payload={})


def make_subscriber(
    sub_id: str,
    *settings: DeliverySetting,
    locale: str = "en",
) -> Subscriber:
    return Subscriber(id=sub_id, locale=locale, settings=list(settings))


def static_renderer(event_type: EventType, event: Event, locale: str, *, refresh: bool = False) -> str:
    return f"{event_type.value}:{locale}:{'refresh' if refresh else 'first'}"


async def make_dispatcher(
    *subscribers: Subscriber,
    broadcaster: AsyncMock | None = None,
    dry_run: bool = False,
) -> tuple[BroadcastDispatcher, InMemoryStore, AsyncMock]:
    store = InMemoryStore()
    for sub in subscribers:
        await store.upsert_subscriber(sub)
    broadcaster = broadcaster or AsyncMock()
    dispatcher = BroadcastDispatcher(
        RecipientResolver(store),
        store,
        broadcaster,
        DeliveryConfig(dry_run=dry_run),
        renderer=static_renderer,
    )
    return dispatcher, store, broadcaster


class TestRecipientResolver:
    """Tests for RecipientResolver."""

    @pytest.mark.asyncio
    async def test_only_subscribers_with_enabled_setting(self) -> None:
        store = InMemoryStore()
        await store.upsert_subscriber(
            make_subscriber("b", DeliverySetting(type=EventType.HELLTIDE, channel_id="1"))
        )
        await store.upsert_subscriber(
            make_subscriber("c", DeliverySetting(type=EventType.LEGION, channel_id="2"))
        )
        await store.upsert_subscriber(
            make_subscriber(
                "d", DeliverySetting(type=EventType.HELLTIDE, channel_id="3", enabled=False)
            )
        )
        await store.upsert_subscriber(
            make_subscriber("a", DeliverySetting(type=EventType.HELLTIDE, channel_id="4"))
        )

        subs = await RecipientResolver(store).list_subscribers(EventType.HELLTIDE)

        assert [s.id for s in subs] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_when_nobody_subscribed(self) -> None:
        subs = await RecipientResolver(InMemoryStore()).list_subscribers(EventType.WORLD_BOSS)
        assert subs == []


class TestEditVsCreate:
    """Prior message id selects edit; returned id is written back."""

    @pytest.mark.asyncio
    async def test_create_when_no_prior_id(self) -> None:
        sub = make_subscriber("g1", DeliverySetting(type=EventType.HELLTIDE, channel_id="c1"))
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(return_value="m-new")
        dispatcher, store, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        report = await dispatcher.dispatch(make_event())

        assert report.delivered == 1
        channel_id, message, prior = broadcaster.broadcast.await_args.args
        assert channel_id == "c1"
        assert prior is None
        assert message == OutboundMessage(content="helltide:en:first")
        stored = await store.get_subscriber("g1")
        assert stored is not None
        assert stored.settings[0].message_id == "m-new"

    @pytest.mark.asyncio
    async def test_edit_when_prior_id(self) -> None:
        sub = make_subscriber(
            "g1",
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c1", message_id="m-old"),
        )
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(return_value="m-edited")
        dispatcher, store, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        await dispatcher.dispatch(make_event(), refresh=True)

        channel_id, message, prior = broadcaster.broadcast.await_args.args
        assert prior == "m-old"
        assert message.content == "helltide:en:refresh"
        stored = await store.get_subscriber("g1")
        assert stored is not None
        assert stored.settings[0].message_id == "m-edited"

    @pytest.mark.asyncio
    async def test_failed_send_leaves_prior_id(self) -> None:
        sub = make_subscriber(
            "g1",
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c1", message_id="m-old"),
        )
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(return_value=None)
        dispatcher, store, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        report = await dispatcher.dispatch(make_event())

        assert report.failed == 1
        assert store.metrics.write_backs == 0
        stored = await store.get_subscriber("g1")
        assert stored is not None
        assert stored.settings[0].message_id == "m-old"


class TestMessageBuild:
    """Each setting gets its own freshly built message."""

    @pytest.mark.asyncio
    async def test_role_mention_scoped_per_setting(self) -> None:
        sub = make_subscriber(
            "g1",
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c1", role_id="r1"),
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c2", role_id="r2"),
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c3"),
        )
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(side_effect=["m1", "m2", "m3"])
        dispatcher, _, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        await dispatcher.dispatch(make_event())

        messages = [call.args[1] for call in broadcaster.broadcast.await_args_list]
        assert messages[0].content == "helltide:en:first - <@&r1>"
        assert messages[0].allowed_mentions == {"roles": ["r1"]}
        assert messages[1].content == "helltide:en:first - <@&r2>"
        assert messages[1].allowed_mentions == {"roles": ["r2"]}
        assert messages[2].content == "helltide:en:first"
        assert messages[2].allowed_mentions is None

    @pytest.mark.asyncio
    async def test_uses_subscriber_locale(self) -> None:
        sub = make_subscriber(
            "g1", DeliverySetting(type=EventType.LEGION, channel_id="c1"), locale="fr"
        )
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(return_value="m1")
        dispatcher, _, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        await dispatcher.dispatch(make_event(EventType.LEGION))

        assert broadcaster.broadcast.await_args.args[1].content == "legion:fr:first"


class TestIsolation:
    """Failures for one subscriber or setting don't affect others."""

    @pytest.mark.asyncio
    async def test_missing_channel_skipped(self) -> None:
        sub = make_subscriber(
            "g1",
            DeliverySetting(type=EventType.HELLTIDE, channel_id=None),
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c2"),
        )
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(return_value="m2")
        dispatcher, _, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        report = await dispatcher.dispatch(make_event())

        assert report.skipped == 1
        assert report.delivered == 1
        broadcaster.broadcast.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exception_for_one_subscriber_isolated(self) -> None:
        sub_a = make_subscriber("a", DeliverySetting(type=EventType.HELLTIDE, channel_id="ca"))
        sub_b = make_subscriber("b", DeliverySetting(type=EventType.HELLTIDE, channel_id="cb"))

        async def broadcast(channel_id: str, message: OutboundMessage, prior: str | None) -> str:
            if channel_id == "ca":
                raise RuntimeError("boom")
            return "mb"

        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(side_effect=broadcast)
        dispatcher, store, _ = await make_dispatcher(sub_a, sub_b, broadcaster=broadcaster)

        report = await dispatcher.dispatch(make_event())

        assert report.subscribers == 2
        assert report.failed == 1
        assert report.delivered == 1
        stored_b = await store.get_subscriber("b")
        assert stored_b is not None
        assert stored_b.settings[0].message_id == "mb"

    @pytest.mark.asyncio
    async def test_failing_setting_does_not_stop_next_setting(self) -> None:
        sub = make_subscriber(
            "g1",
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c1"),
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c2"),
        )
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(side_effect=[RuntimeError("boom"), "m2"])
        dispatcher, _, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        report = await dispatcher.dispatch(make_event())

        assert report.failed == 1
        assert report.delivered == 1

    @pytest.mark.asyncio
    async def test_write_back_failure_still_counts_delivery(self) -> None:
        sub = make_subscriber("g1", DeliverySetting(type=EventType.HELLTIDE, channel_id="c1"))
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(return_value="m1")
        dispatcher, store, _ = await make_dispatcher(sub, broadcaster=broadcaster)
        store.write_back_message_id = AsyncMock(side_effect=RuntimeError("db"))  # type: ignore[method-assign]

        report = await dispatcher.dispatch(make_event())

        assert report.delivered == 1
        assert dispatcher.metrics.write_back_failures == 1


class TestDryRun:
    @pytest.mark.asyncio
    async def test_dry_run_does_not_broadcast(self) -> None:
        sub = make_subscriber("g1", DeliverySetting(type=EventType.HELLTIDE, channel_id="c1"))
        dispatcher, store, broadcaster = await make_dispatcher(sub, dry_run=True)

        report = await dispatcher.dispatch(make_event())

        assert report.delivered == 1
        broadcaster.broadcast.assert_not_called()
        assert store.metrics.write_backs == 0


class TestMetrics:
    @pytest.mark.asyncio
    async def test_tracks_totals_by_type(self) -> None:
        sub = make_subscriber(
            "g1",
            DeliverySetting(type=EventType.HELLTIDE, channel_id="c1"),
            DeliverySetting(type=EventType.LEGION, channel_id="c1"),
        )
        broadcaster = AsyncMock()
        broadcaster.broadcast = AsyncMock(return_value="m")
        dispatcher, _, _ = await make_dispatcher(sub, broadcaster=broadcaster)

        await dispatcher.dispatch(make_event(EventType.HELLTIDE))
        await dispatcher.dispatch(make_event(EventType.LEGION))

        m = dispatcher.metrics
        assert m.total_dispatches == 2
        assert m.total_delivered == 2
        assert m.by_type == {"helltide": 1, "legion": 1}
