"""
Tests for feed frame decoding and the connection state machine.
"""

from unittest.mock import AsyncMock

import pytest

from itslive.feed import CONNECTED, CONNECTING, DISCONNECTED, FeedClient, feed_ws_url, parse_frame


class TestParseFrame:

    def test_socketio_event(self):
        frame = parse_frame('42["market_cap_update",{"mint":"abc","market_cap_usd":5}]')
        assert frame.kind == "event"
        assert frame.event == "market_cap_update"
        assert frame.data == {"mint": "abc", "market_cap_usd": 5}

    def test_socketio_event_with_namespace_and_ack(self):
        frame = parse_frame('42/live,17["nowLive",{"mint":"abc"}]')
        assert (frame.event, frame.data) == ("nowLive", {"mint": "abc"})

    def test_plain_json(self):
        assert parse_frame(b'{"event":"streamOffline","data":{"mint":"abc"}}').data == {"mint": "abc"}
        assert parse_frame('["nowLive",{"mint":"abc"}]').event == "nowLive"

    @pytest.mark.parametrize("raw,kind", [
        ('0{"sid":"x","pingInterval":25000}', "open"),
        ("2", "ping"),
        ('40{"sid":"y"}', "connect"),
        ("40", "connect"),
        ('44{"message":"unauthorized"}', "connect_error"),
        ("41", "disconnect"),
        ("1", "disconnect"),
    ])
    def test_control_packets(self, raw, kind):
        assert parse_frame(raw).kind == kind

    @pytest.mark.parametrize("raw", ["", "not json", "42not json", '{"data":1}', "[]", "[1,2]", b"\xff\xfe", None, 5])
    def test_garbage(self, raw):
        assert parse_frame(raw) is None


class TestFeedUrl:

    def test_http_gets_socketio_endpoint(self):
        assert feed_ws_url("https://feed.example") == "wss://feed.example/socket.io/?EIO=4&transport=websocket"
        assert feed_ws_url("http://localhost:3000/") == "ws://localhost:3000/socket.io/?EIO=4&transport=websocket"

    def test_ws_unchanged(self):
        assert feed_ws_url("wss://feed.example/stream") == "wss://feed.example/stream"


class TestFeedClient:

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def feed(self, events):
        client = FeedClient("wss://feed.example/ws", api_key="secret")

        def record(name):
            async def handler(payload):
                events.append((name, payload))
            return handler

        for name in ("connect", "connect_error", "disconnect", "nowLive"):
            client.on(name, record(name))
        return client

    async def test_socketio_handshake(self, feed, events):
        ws = AsyncMock()
        feed.state = CONNECTING

        await feed.handle_message(ws, '0{"sid":"x"}')
        ws.send.assert_awaited_with('40{"apiKey":"secret"}')
        assert feed.state == CONNECTING

        await feed.handle_message(ws, '40{"sid":"y"}')
        assert feed.state == CONNECTED
        assert events == [("connect", {"sid": "y"})]

        await feed.handle_message(ws, "2")
        ws.send.assert_awaited_with("3")

        await feed.handle_message(ws, '42["nowLive",{"mint":"abc"}]')
        assert events[-1] == ("nowLive", {"mint": "abc"})

    async def test_connect_error_closes(self, feed, events):
        ws = AsyncMock()
        feed.state = CONNECTING
        await feed.handle_message(ws, '0{"sid":"x"}')
        await feed.handle_message(ws, '44{"message":"invalid api key"}')
        assert feed.state == DISCONNECTED
        assert events == [("connect_error", {"message": "invalid api key"})]
        ws.close.assert_awaited()

    async def test_data_events_only_while_connected(self, feed, events):
        feed.state = DISCONNECTED
        await feed.emit("nowLive", {"mint": "abc"})
        assert events == []
        await feed.emit("disconnect", "io server disconnect")
        assert events == [("disconnect", "io server disconnect")]

    async def test_unhandled_event_ignored(self, feed, events):
        feed.state = CONNECTED
        await feed.emit("somethingElse", {})
        assert events == []

    async def test_auth_packet_without_key(self):
        assert FeedClient("wss://x")._auth_packet() == "40"

    async def test_close_before_run(self, feed):
        await feed.close()
        await feed.run()
        assert feed.state == DISCONNECTED


class FakeSocket:
    """Async-iterable websocket replaying scripted frames."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.frames:
            raise StopAsyncIteration
        return self.frames.pop(0)

    async def send(self, message):
        self.sent.append(message)

    async def close(self):
        self.frames.clear()


class TestReconnect:

    def script(self, monkeypatch, client, sessions):
        """Each connection replays the next frame list; run() stops once they are used up."""
        sessions = list(sessions)
        sleeps = []

        def connect(url, **kwargs):
            return FakeSocket(sessions.pop(0))

        async def sleep(delay):
            sleeps.append(delay)
            if not sessions:
                client._closing = True

        monkeypatch.setattr("itslive.feed.websockets.connect", connect)
        monkeypatch.setattr("itslive.feed.asyncio.sleep", sleep)
        return sleeps

    async def test_rejected_handshakes_back_off(self, monkeypatch):
        client = FeedClient("https://feed.example", api_key="wrong")
        rejected = ['0{"sid":"x"}', '44{"message":"invalid api key"}']
        sleeps = self.script(monkeypatch, client, [rejected] * 5)

        await client.run()
        assert [int(s) for s in sleeps] == [1, 2, 4, 8, 10]

    async def test_acknowledged_session_resets_delay(self, monkeypatch):
        client = FeedClient("https://feed.example")
        rejected = ['0{"sid":"x"}', '44{"message":"busy"}']
        accepted = ['0{"sid":"x"}', '40{"sid":"y"}']
        sleeps = self.script(monkeypatch, client, [rejected, rejected, accepted])

        await client.run()
        assert [int(s) for s in sleeps] == [1, 2, 1]

    async def test_quiet_plain_json_feed_reports_disconnect(self, monkeypatch):
        client = FeedClient("wss://feed.example/ws")
        events = []

        def record(name):
            async def handler(payload):
                events.append(name)
            return handler

        for name in ("connect", "connect_error", "disconnect", "nowLive"):
            client.on(name, record(name))
        self.script(monkeypatch, client, [[], ['{"event":"nowLive","data":{"mint":"abc"}}']])

        await client.run()
        assert events == ["connect", "disconnect", "connect", "nowLive", "disconnect"]
        assert client.state == DISCONNECTED
