import asyncio
import contextlib
import logging
import signal

import aiohttp

from .commands import BotContext, telegram_loop
from .config import (
    DB_PATH,
    FEED_RECONNECT_MAX_SECONDS,
    SOCKET_API_KEY,
    SOCKET_URL,
    TELEGRAM_BOT_TOKEN,
)
from .dispatcher import Dispatcher
from .feed import FeedClient
from .log import setup_logging
from .router import StreamRouter
from .storage import Store
from .telegram import TelegramAPI

log = logging.getLogger(__name__)


async def main() -> None:
    store = Store(DB_PATH)
    await store.start()
    feed = FeedClient(SOCKET_URL, api_key=SOCKET_API_KEY, reconnect_max=FEED_RECONNECT_MAX_SECONDS)
    try:
        async with aiohttp.ClientSession() as session:
            tg = TelegramAPI(TELEGRAM_BOT_TOKEN, session)
            router = StreamRouter(store, Dispatcher(tg, store))
            router.attach(feed)

            tasks = [
                asyncio.create_task(telegram_loop(BotContext(store, tg, session)), name="telegram"),
                asyncio.create_task(feed.run(), name="feed"),
            ]
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(sig, stop.set)

            waiter = asyncio.create_task(stop.wait())
            done, _ = await asyncio.wait([waiter, *tasks], return_when=asyncio.FIRST_COMPLETED)
            log.info("Shutting down bot...")
            for t in done:
                if t is not waiter and not t.cancelled() and t.exception():
                    log.error(f"{t.get_name()} stopped", exc_info=t.exception())

            await feed.close()
            for t in (waiter, *tasks):
                t.cancel()
            await asyncio.gather(waiter, *tasks, return_exceptions=True)
    finally:
        await store.stop()


def run() -> None:
    setup_logging()
    if not TELEGRAM_BOT_TOKEN:
        raise SystemExit("TELEGRAM_BOT_TOKEN is required")
    if not SOCKET_URL:
        raise SystemExit("SOCKET_URL is required")
    asyncio.run(main())


if __name__ == "__main__":
    run()
