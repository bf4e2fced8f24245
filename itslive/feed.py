"""
Livestream feed transport.

One long-lived websocket delivering named events (`nowLive`,
`market_cap_update`, `streamOffline`). Both Socket.IO v4 servers and
plain JSON feeds are understood:

    0{"sid": ...}                      engine.io open, answered with 40{auth}
    2                                  engine.io ping, answered with 3
    40{...} / 44{...}                  socket.io connect ack / connect error
    42["nowLive", {...}]               socket.io event
    {"event": "nowLive", "data": {}}   plain JSON event
    ["nowLive", {...}]                 plain JSON event

Socket.IO is assumed when the URL points at a `socket.io` endpoint; any
other URL is a plain JSON feed that counts as connected once the socket
opens. The transport owns reconnection (exponential backoff, reset only
by an acknowledged session). Lifecycle events
`connect`, `connect_error` and `disconnect` are emitted to registered
handlers on every state transition; data events are only delivered while
connected, one at a time in arrival order.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import orjson
import websockets

from .util import safe_orjson_loads

log = logging.getLogger(__name__)

DISCONNECTED = "disconnected"
CONNECTING = "connecting"
CONNECTED = "connected"

LIFECYCLE_EVENTS = ("connect", "connect_error", "disconnect")

Handler = Callable[[Any], Awaitable[None]]


@dataclass
class Frame:
    kind: str            # open|ping|connect|connect_error|disconnect|event
    event: str = ""
    data: Any = None


def feed_ws_url(url: str) -> str:
    """http(s) base URLs get the Socket.IO websocket endpoint, ws(s) URLs are used as is."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return url
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = parts.path if "socket.io" in parts.path else parts.path.rstrip("/") + "/socket.io/"
    query = parts.query or "EIO=4&transport=websocket"
    return urlunsplit((scheme, parts.netloc, path, query, ""))


def _event_frame(arr: Any) -> Optional[Frame]:
    if isinstance(arr, list) and arr and isinstance(arr[0], str):
        return Frame("event", arr[0], arr[1] if len(arr) > 1 else None)
    return None


def parse_frame(raw: Any) -> Optional[Frame]:
    """Decode one websocket message. Anything unrecognised yields None."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str) or not raw:
        return None

    head = raw[0]
    if head in "{[":
        obj = safe_orjson_loads(raw)
        if isinstance(obj, dict):
            name = obj.get("event") or obj.get("type")
            if isinstance(name, str) and name:
                return Frame("event", name, obj.get("data", obj.get("payload")))
            return None
        return _event_frame(obj)

    if raw == "2":
        return Frame("ping")
    if raw == "1" or raw.startswith("41"):
        return Frame("disconnect")
    if head == "0":
        return Frame("open", data=safe_orjson_loads(raw[1:]))
    if raw.startswith("40"):
        return Frame("connect", data=safe_orjson_loads(raw[2:]) if len(raw) > 2 else None)
    if raw.startswith("44"):
        return Frame("connect_error", data=safe_orjson_loads(raw[2:]))
    if raw.startswith("42"):
        body = raw[2:]
        if body.startswith("/"):
            # namespaced: 42/ns,[...]
            _, _, body = body.partition(",")
        body = body.lstrip("0123456789")  # ack id
        return _event_frame(safe_orjson_loads(body))
    return None


class FeedClient:
    def __init__(self, url: str, api_key: str = "", reconnect_max: float = 10.0):
        self.url = feed_ws_url(url)
        self.api_key = api_key
        self.reconnect_max = reconnect_max
        self.state = DISCONNECTED
        self.handlers: Dict[str, Handler] = {}
        self.socketio = "socket.io" in self.url
        self._ws = None
        self._closing = False
        self._backoff = 1.0

    def on(self, event: str, handler: Handler) -> None:
        self.handlers[event] = handler

    async def emit(self, event: str, payload: Any = None) -> None:
        if event not in LIFECYCLE_EVENTS and self.state != CONNECTED:
            return
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(payload)

    async def _set_state(self, state: str, event: Optional[str] = None, payload: Any = None) -> None:
        self.state = state
        if event:
            await self.emit(event, payload)

    async def _connected(self, payload: Any = None) -> None:
        # only an acknowledged session resets the reconnect delay
        self._backoff = 1.0
        await self._set_state(CONNECTED, "connect", payload)

    def _auth_packet(self) -> str:
        if self.api_key:
            return "40" + orjson.dumps({"apiKey": self.api_key}).decode("utf-8")
        return "40"

    async def handle_message(self, ws: Any, raw: Any) -> None:
        frame = parse_frame(raw)
        if frame is None:
            return
        if frame.kind == "open":
            await ws.send(self._auth_packet())
        elif frame.kind == "ping":
            await ws.send("3")
        elif frame.kind == "connect":
            await self._connected(frame.data)
        elif frame.kind == "connect_error":
            await self._set_state(DISCONNECTED, "connect_error", frame.data)
            await ws.close()
        elif frame.kind == "disconnect":
            await ws.close()
        elif frame.kind == "event":
            await self.emit(frame.event, frame.data)

    async def run(self) -> None:
        self._backoff = 1.0
        while not self._closing:
            await self._set_state(CONNECTING)
            reason: Any = "connection closed"
            headers = {"x-api-key": self.api_key} if self.api_key else None
            try:
                async with websockets.connect(
                    self.url,
                    additional_headers=headers,
                    ping_interval=20,
                    ping_timeout=20,
                    close_timeout=10,
                    max_queue=4096,
                ) as ws:
                    self._ws = ws
                    # a plain JSON feed has no handshake: the open socket is the session
                    if not self.socketio:
                        await self._connected()
                    async for msg in ws:
                        await self.handle_message(ws, msg)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = f"{type(e).__name__} {e!r}"
            finally:
                self._ws = None

            if self.state == CONNECTED:
                await self._set_state(DISCONNECTED, "disconnect", reason)
            elif self.state == CONNECTING:
                await self._set_state(DISCONNECTED, "connect_error", reason)
            if self._closing:
                break
            await asyncio.sleep(self._backoff + random.random() * 0.2)
            self._backoff = min(self._backoff * 2.0, self.reconnect_max)

    async def close(self) -> None:
        self._closing = True
        ws = self._ws
        if ws is not None:
            await ws.close()
