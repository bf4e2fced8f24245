"""
Tests for feed event routing.
"""

import sqlite3
from unittest.mock import AsyncMock

import pytest

from itslive.feed import CONNECTED, FeedClient
from itslive.models import MarketCapAlert
from itslive.router import StreamRouter
from itslive.telegram import TelegramError

from .conftest import MINT, OTHER_MINT


@pytest.fixture
def router(store, dispatcher):
    return StreamRouter(store, dispatcher)


LIVE_EVENT = {
    "mint": MINT,
    "name": "Pump Token",
    "symbol": "PUMP",
    "livestream_title": "gm chat",
    "viewers": 42,
    "market_cap_usd": 51000,
    "holders": 310,
}


class TestNowLive:

    async def test_no_subscribers_makes_no_calls(self, router, tg):
        await router.now_live(LIVE_EVENT)
        tg.send_message.assert_not_called()
        tg.pin_chat_message.assert_not_called()

    async def test_announces_and_pins(self, router, tg, store):
        await store.add_subscription("1", MINT)
        await store.add_subscription("2", MINT)
        await router.now_live(LIVE_EVENT)

        assert tg.send_message.await_count == 2
        text = tg.send_message.await_args.args[1]
        assert text.startswith("🟢 Pump Token is LIVE!\n\n🎬 gm chat")
        assert len(await store.find_pinned_messages(MINT)) == 2

    @pytest.mark.parametrize("stream", [{}, {"mint": ""}, {"mint": None}, None, "junk"])
    async def test_missing_mint_dropped(self, router, tg, store, stream):
        await store.add_subscription("1", MINT)
        await router.now_live(stream)
        tg.send_message.assert_not_called()


class TestStreamOffline:

    async def test_cleanup_then_broadcast_to_all(self, router, tg, store):
        for chat in ("1", "2", "3"):
            await store.add_subscription(chat, MINT)
        await store.upsert_pinned_message("1", MINT, 11)
        await store.upsert_pinned_message("2", MINT, 22)

        async def unpin(chat_id, message_id):
            if chat_id == "2":
                raise TelegramError("unpinChatMessage", "Bad Request: not enough rights", 400)

        tg.unpin_chat_message.side_effect = unpin
        await router.stream_offline({"mint": MINT, "symbol": "PUMP"})

        assert await store.find_pinned_messages(MINT) == []
        recipients = sorted(c.args[0] for c in tg.send_message.await_args_list)
        assert recipients == ["1", "2", "3"]
        assert tg.send_message.await_args.args[1] == "🔴 PUMP went offline."

    async def test_no_subscribers(self, router, tg, store):
        await store.upsert_pinned_message("1", MINT, 11)
        await router.stream_offline({"mint": MINT})
        tg.unpin_chat_message.assert_not_called()
        tg.send_message.assert_not_called()


class TestMarketCapUpdate:

    async def test_edits_firing_alert_messages(self, router, tg, store):
        await store.upsert_market_cap(MINT, 100_000)
        await store.create_alert(MarketCapAlert("C1", MINT, 11, "threshold", threshold=10, direction="up"))
        await store.create_alert(MarketCapAlert("C2", MINT, 22, "amount", amount=50_000, direction="down"))

        await router.market_cap_update({"mint": MINT, "market_cap_usd": 115_000})
        assert tg.edit_message_text.await_count == 1
        args = tg.edit_message_text.await_args
        assert args.args[:2] == ("C1", 11)

        await router.market_cap_update({"mint": MINT, "market_cap_usd": 40_000})
        assert tg.edit_message_text.await_count == 2
        assert tg.edit_message_text.await_args.args[:2] == ("C2", 22)

    @pytest.mark.parametrize("stream", [
        {"market_cap_usd": 10},
        {"mint": MINT},
        {"mint": MINT, "market_cap_usd": "10"},
        {"mint": MINT, "market_cap_usd": True},
    ])
    async def test_invalid_updates_leave_state_alone(self, router, store, stream):
        await router.market_cap_update(stream)
        assert await store.get_market_cap(MINT) is None

    async def test_no_alerts_still_records_state(self, router, tg, store):
        await router.market_cap_update({"mint": OTHER_MINT, "market_cap_usd": 77})
        assert await store.get_market_cap(OTHER_MINT) == 77
        tg.edit_message_text.assert_not_called()


class TestFeedWiring:

    async def test_store_error_is_isolated_per_event(self, dispatcher, caplog):
        broken = AsyncMock()
        broken.find_subscriber_chats.side_effect = sqlite3.OperationalError("database is locked")
        router = StreamRouter(broken, dispatcher)

        feed = FeedClient("wss://feed.example/ws")
        router.attach(feed)
        feed.state = CONNECTED

        await feed.emit("nowLive", {"mint": MINT})
        await feed.emit("streamOffline", {"mint": MINT})

        errors = [r for r in caplog.records if r.levelname == "ERROR"]
        assert len(errors) == 2
        assert MINT in errors[0].getMessage()

    async def test_lifecycle_handlers_registered(self, router):
        feed = FeedClient("wss://feed.example/ws")
        router.attach(feed)
        assert {"connect", "connect_error", "disconnect", "nowLive", "market_cap_update",
                "streamOffline"} <= set(feed.handlers)
        await feed.emit("connect", {"sid": "abc"})
        await feed.emit("disconnect", "transport close")
