"""Shared fixtures: an in-memory store and a mocked Telegram client."""

import os

os.environ.setdefault("TELEGRAM_BOT_TOKEN", "test_token")
os.environ.setdefault("SOCKET_URL", "wss://feed.example/socket")

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from itslive.dispatcher import Dispatcher
from itslive.storage import Store
from itslive.telegram import TelegramAPI

MINT = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
OTHER_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest_asyncio.fixture
async def store():
    s = Store(":memory:")
    await s.start()
    yield s
    await s.stop()


@pytest.fixture
def tg():
    """Telegram client whose sends succeed with increasing message ids."""
    mock = AsyncMock(spec=TelegramAPI)
    counter = {"next": 100}

    async def send_message(chat_id, text, reply_markup=None):
        counter["next"] += 1
        return {"message_id": counter["next"], "chat": {"id": chat_id}, "text": text}

    mock.send_message.side_effect = send_message
    mock.get_chat_member.return_value = {"status": "administrator"}
    return mock


@pytest.fixture
def dispatcher(tg, store):
    return Dispatcher(tg, store)
