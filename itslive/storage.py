"""
SQLite persistence for subscriptions, pinned live announcements,
market cap alerts and the last observed market cap per token.

Every operation is a single statement (the alert direction update is the
one exception: delete then insert). Uniqueness is enforced by the schema
and reported back through the affected row count, never by a read before
the write.
"""

import logging
from pathlib import Path
from typing import List, Optional

import aiosqlite

from .models import MarketCapAlert, PinnedMessage

log = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id TEXT NOT NULL,
    token_address TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(chat_id, token_address)
);

CREATE TABLE IF NOT EXISTS pinned_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id TEXT NOT NULL,
    token_address TEXT NOT NULL,
    message_id INTEGER NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(chat_id, token_address)
);

CREATE TABLE IF NOT EXISTS marketcap_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id TEXT NOT NULL,
    token_address TEXT NOT NULL,
    message_id INTEGER NOT NULL,
    type TEXT NOT NULL,
    threshold REAL NOT NULL DEFAULT 0,
    amount REAL NOT NULL DEFAULT 0,
    direction TEXT NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(chat_id, token_address)
);

CREATE TABLE IF NOT EXISTS token_mc (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    token_address TEXT NOT NULL UNIQUE,
    market_cap_usd REAL DEFAULT 0,
    last_updated DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_subscriptions_token ON subscriptions(token_address);
CREATE INDEX IF NOT EXISTS idx_alerts_token ON marketcap_alerts(token_address);
CREATE INDEX IF NOT EXISTS idx_pinned_token ON pinned_messages(token_address);
"""


def _alert_from_row(row: aiosqlite.Row) -> MarketCapAlert:
    return MarketCapAlert(
        chat_id=row["chat_id"],
        token_address=row["token_address"],
        message_id=row["message_id"],
        kind=row["type"],
        threshold=row["threshold"],
        amount=row["amount"],
        direction=row["direction"],
    )


class Store:
    """
    Async SQLite store.

    Call start() before use and stop() on shutdown.
    """

    def __init__(self, database_path: str = "subscriptions.db"):
        self.database_path = database_path
        self._db: Optional[aiosqlite.Connection] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        log.info(f"Opening store: {self.database_path}")
        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.database_path)
        self._db.row_factory = aiosqlite.Row
        if self.database_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            log.info("Store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Store is not started")
        return self._db

    async def _write(self, query: str, params: tuple) -> int:
        cursor = await self.db.execute(query, params)
        await self.db.commit()
        return cursor.rowcount

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def add_subscription(self, chat_id: str, token_address: str) -> bool:
        """Insert-or-ignore. Returns False when the chat was already subscribed."""
        changed = await self._write(
            "INSERT OR IGNORE INTO subscriptions (chat_id, token_address) VALUES (?, ?)",
            (str(chat_id), token_address),
        )
        return changed > 0

    async def remove_subscription(self, chat_id: str, token_address: str) -> bool:
        changed = await self._write(
            "DELETE FROM subscriptions WHERE chat_id = ? AND token_address = ?",
            (str(chat_id), token_address),
        )
        return changed > 0

    async def find_subscriber_chats(self, token_address: str) -> List[str]:
        async with self.db.execute(
            "SELECT DISTINCT chat_id FROM subscriptions WHERE token_address = ?",
            (token_address,),
        ) as cursor:
            return [row["chat_id"] for row in await cursor.fetchall()]

    async def find_tokens_by_chat(self, chat_id: str) -> List[str]:
        async with self.db.execute(
            "SELECT token_address FROM subscriptions WHERE chat_id = ? ORDER BY created_at DESC, id DESC",
            (str(chat_id),),
        ) as cursor:
            return [row["token_address"] for row in await cursor.fetchall()]

    # =========================================================================
    # Pinned live announcements
    # =========================================================================

    async def upsert_pinned_message(self, chat_id: str, token_address: str, message_id: int) -> None:
        await self._write(
            """INSERT INTO pinned_messages (chat_id, token_address, message_id)
               VALUES (?, ?, ?)
               ON CONFLICT(chat_id, token_address)
               DO UPDATE SET message_id = excluded.message_id""",
            (str(chat_id), token_address, message_id),
        )

    async def find_pinned_messages(self, token_address: str) -> List[PinnedMessage]:
        async with self.db.execute(
            "SELECT chat_id, message_id FROM pinned_messages WHERE token_address = ?",
            (token_address,),
        ) as cursor:
            return [PinnedMessage(row["chat_id"], row["message_id"]) for row in await cursor.fetchall()]

    async def delete_pinned_message(self, chat_id: str, token_address: str) -> None:
        await self._write(
            "DELETE FROM pinned_messages WHERE chat_id = ? AND token_address = ?",
            (str(chat_id), token_address),
        )

    # =========================================================================
    # Market cap state
    # =========================================================================

    async def get_market_cap(self, token_address: str) -> Optional[float]:
        async with self.db.execute(
            "SELECT market_cap_usd FROM token_mc WHERE token_address = ?",
            (token_address,),
        ) as cursor:
            row = await cursor.fetchone()
        return None if row is None else row["market_cap_usd"]

    async def upsert_market_cap(self, token_address: str, market_cap_usd: float) -> None:
        # the UPDATE repeats the REPLACE on purpose; both are idempotent
        await self.db.execute(
            "INSERT OR REPLACE INTO token_mc (token_address, market_cap_usd, last_updated) "
            "VALUES (?, ?, CURRENT_TIMESTAMP)",
            (token_address, market_cap_usd),
        )
        await self.db.execute(
            "UPDATE token_mc SET market_cap_usd = ?, last_updated = CURRENT_TIMESTAMP WHERE token_address = ?",
            (market_cap_usd, token_address),
        )
        await self.db.commit()

    # =========================================================================
    # Market cap alerts
    # =========================================================================

    async def create_alert(self, alert: MarketCapAlert) -> bool:
        """Insert-or-ignore. Returns False when the chat already has an alert for the token."""
        changed = await self._write(
            """INSERT OR IGNORE INTO marketcap_alerts
               (chat_id, token_address, message_id, type, threshold, amount, direction)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                str(alert.chat_id),
                alert.token_address,
                alert.message_id,
                alert.kind,
                alert.threshold,
                alert.amount,
                alert.direction,
            ),
        )
        return changed > 0

    async def delete_alert(self, chat_id: str, token_address: str) -> bool:
        changed = await self._write(
            "DELETE FROM marketcap_alerts WHERE chat_id = ? AND token_address = ?",
            (str(chat_id), token_address),
        )
        return changed > 0

    async def update_alert_direction(
        self, chat_id: str, token_address: str, message_id: int, direction: str
    ) -> bool:
        """Replace the alert with one pointing the other way. Returns False if there was none."""
        current = await self.find_alert(chat_id, token_address)
        if current is None:
            return False
        await self.delete_alert(chat_id, token_address)
        current.message_id = message_id
        current.direction = direction
        return await self.create_alert(current)

    async def find_alert(self, chat_id: str, token_address: str) -> Optional[MarketCapAlert]:
        async with self.db.execute(
            "SELECT * FROM marketcap_alerts WHERE chat_id = ? AND token_address = ?",
            (str(chat_id), token_address),
        ) as cursor:
            row = await cursor.fetchone()
        return None if row is None else _alert_from_row(row)

    async def find_alerts_by_chat(self, chat_id: str) -> List[MarketCapAlert]:
        async with self.db.execute(
            "SELECT * FROM marketcap_alerts WHERE chat_id = ? ORDER BY created_at DESC, id DESC",
            (str(chat_id),),
        ) as cursor:
            return [_alert_from_row(row) for row in await cursor.fetchall()]

    async def find_alerts_for_token(self, token_address: str) -> List[MarketCapAlert]:
        async with self.db.execute(
            "SELECT * FROM marketcap_alerts WHERE token_address = ? ORDER BY id",
            (token_address,),
        ) as cursor:
            return [_alert_from_row(row) for row in await cursor.fetchall()]
