import logging
from typing import Any, Dict, Optional

from .dispatcher import Dispatcher
from .engine import evaluate_market_cap
from .feed import FeedClient
from .models import Observation
from .render import build_live_message, build_offline_message, pumpfun_kb
from .storage import Store
from .util import as_number, get_str

log = logging.getLogger(__name__)


def _mint(stream: Any) -> Optional[str]:
    if not isinstance(stream, dict):
        return None
    mint = stream.get("mint")
    if not isinstance(mint, str) or not mint:
        return None
    return mint


class StreamRouter:
    """Maps feed events onto the alert engine and the dispatcher."""

    def __init__(self, store: Store, dispatcher: Dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    def attach(self, feed: FeedClient) -> None:
        feed.on("connect", self.on_connect)
        feed.on("connect_error", self.on_connect_error)
        feed.on("disconnect", self.on_disconnect)
        feed.on("nowLive", self.guarded("nowLive", self.now_live))
        feed.on("market_cap_update", self.guarded("market_cap_update", self.market_cap_update))
        feed.on("streamOffline", self.guarded("streamOffline", self.stream_offline))

    def guarded(self, name: str, handler):
        async def run(stream: Any) -> None:
            try:
                await handler(stream)
            except Exception:
                log.exception(f"[FEED] {name} handler failed for {_mint(stream)}")
        return run

    # -------------------------
    # connection state
    # -------------------------
    async def on_connect(self, info: Any) -> None:
        sid = info.get("sid") if isinstance(info, dict) else None
        log.info(f"[FEED] connected to websocket {sid or ''}".rstrip())

    async def on_connect_error(self, error: Any) -> None:
        log.warning(f"[FEED] websocket connection failed: {error}")

    async def on_disconnect(self, reason: Any) -> None:
        log.warning(f"[FEED] disconnected from websocket: {reason}")

    # -------------------------
    # stream events
    # -------------------------
    async def now_live(self, stream: Dict[str, Any]) -> None:
        mint = _mint(stream)
        if not mint:
            return
        chats = await self.store.find_subscriber_chats(mint)
        if not chats:
            return
        pinned = await self.dispatcher.announce_live(chats, mint, build_live_message(stream), pumpfun_kb(mint))
        log.info(f"[LIVE] {mint} announced to {len(chats)} chat(s), pinned in {pinned}")

    async def market_cap_update(self, stream: Dict[str, Any]) -> None:
        mint = _mint(stream)
        if not mint:
            return
        mc = as_number(stream.get("market_cap_usd"))
        if mc is None:
            log.debug(f"[MC] {mint} update without a numeric market cap")
            return
        obs = Observation(
            token=mint,
            market_cap_usd=mc,
            name=get_str(stream, "name"),
            symbol=get_str(stream, "symbol"),
        )
        intents = await evaluate_market_cap(self.store, obs)
        if intents:
            await self.dispatcher.apply_edits(intents)

    async def stream_offline(self, stream: Dict[str, Any]) -> None:
        mint = _mint(stream)
        if not mint:
            return
        chats = await self.store.find_subscriber_chats(mint)
        if not chats:
            return
        await self.dispatcher.cleanup_pins(mint)
        sent = await self.dispatcher.broadcast(chats, build_offline_message(stream), pumpfun_kb(mint))
        log.info(f"[OFFLINE] {mint} sent to {sent}/{len(chats)} chat(s)")
