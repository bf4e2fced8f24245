"""
Fan-out of notifications to Telegram chats.

Each chat (or edit) is its own failure domain: Telegram errors are logged
and dropped, never retried, and never stop the rest of the batch. All
operations of a batch run concurrently and the batch returns once every
one of them has settled. Store errors are not platform errors and
propagate to the caller.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import EditIntent, PinnedMessage
from .storage import Store
from .telegram import TelegramAPI, TelegramError

log = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, tg: TelegramAPI, store: Store):
        self.tg = tg
        self.store = store

    async def broadcast(
        self, chat_ids: Iterable[str], text: str, reply_markup: Optional[Dict[str, Any]] = None
    ) -> int:
        """Send `text` to every chat. Returns how many sends succeeded."""

        async def send_one(chat_id: str) -> bool:
            try:
                await self.tg.send_message(chat_id, text, reply_markup=reply_markup)
                return True
            except TelegramError as e:
                log.warning(f"Failed to send message to chat {chat_id}: {e.description}")
                return False

        results = await asyncio.gather(*(send_one(c) for c in chat_ids))
        return sum(results)

    async def announce_live(
        self, chat_ids: Iterable[str], token: str, text: str, reply_markup: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Send the live message to every chat and pin it silently.

        A pin is recorded only when it succeeded; a failed pin leaves the
        sent message in place. Returns how many messages were pinned.
        """

        async def announce_one(chat_id: str) -> bool:
            try:
                sent = await self.tg.send_message(chat_id, text, reply_markup=reply_markup)
            except TelegramError as e:
                log.warning(f"Failed to notify chat {chat_id}: {e.description}")
                return False

            message_id = (sent or {}).get("message_id")
            if message_id is None:
                log.warning(f"No message id returned for live message in chat {chat_id}")
                return False
            try:
                await self.tg.pin_chat_message(chat_id, message_id, disable_notification=True)
            except TelegramError as e:
                log.warning(f"Failed to pin message {message_id} in chat {chat_id}: {e.description}")
                return False

            await self.store.upsert_pinned_message(chat_id, token, message_id)
            return True

        results = await asyncio.gather(*(announce_one(c) for c in chat_ids))
        return sum(results)

    async def cleanup_pins(self, token: str) -> int:
        """
        Unpin every recorded live message for `token` and forget it.

        The row is deleted whether or not the unpin went through, so a
        stale pin never blocks the next live announcement. Returns how many
        rows were cleared.
        """
        pinned: List[PinnedMessage] = await self.store.find_pinned_messages(token)
        if not pinned:
            return 0

        async def unpin_one(row: PinnedMessage) -> None:
            try:
                await self.tg.unpin_chat_message(row.chat_id, row.message_id)
            except TelegramError as e:
                log.warning(f"Failed to unpin message {row.message_id} in chat {row.chat_id}: {e.description}")
            finally:
                await self.store.delete_pinned_message(row.chat_id, token)

        await asyncio.gather(*(unpin_one(r) for r in pinned))
        return len(pinned)

    async def apply_edits(self, intents: Iterable[EditIntent]) -> int:
        """Edit every target message in place. Returns how many edits succeeded."""

        async def edit_one(intent: EditIntent) -> bool:
            try:
                await self.tg.edit_message_text(
                    intent.chat_id, intent.message_id, intent.text, reply_markup=intent.reply_markup
                )
                return True
            except TelegramError as e:
                if e.is_not_modified:
                    log.debug(f"Message {intent.message_id} in chat {intent.chat_id} already up to date")
                    return False
                log.warning(
                    f"Failed to update message {intent.message_id} in chat {intent.chat_id}: {e.description}"
                )
                return False

        results = await asyncio.gather(*(edit_one(i) for i in intents))
        return sum(results)
