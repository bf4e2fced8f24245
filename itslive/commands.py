import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .coins import fetch_coin_data, format_token_display
from .config import TG_LONGPOLL_TIMEOUT
from .models import ALERT_KINDS, DIRECTIONS, KIND_AMOUNT, KIND_THRESHOLD, MarketCapAlert
from .render import (
    HELP_TEXT,
    alert_menu_kb,
    build_alert_created_message,
    build_alert_list_message,
    build_alert_menu_message,
    describe_alert,
)
from .storage import Store
from .telegram import TelegramAPI, TelegramError
from .util import is_valid_mint, normalize_mint

log = logging.getLogger(__name__)

COMMAND_RE = re.compile(r"^/(\w+)(?:@[\w_]+)?(?:\s+(.*))?$", re.S)
MENU_TOKEN_RE = re.compile(r"token:\s+(\S+)")
GROUP_TYPES = ("group", "supergroup")
ADMIN_STATUSES = ("creator", "administrator")
ADMIN_ONLY = "Only group administrators can configure the notification mint."


@dataclass
class BotContext:
    store: Store
    tg: TelegramAPI
    session: aiohttp.ClientSession


def parse_command(text: str) -> Optional[Tuple[str, str]]:
    m = COMMAND_RE.match((text or "").strip())
    if not m:
        return None
    return m.group(1).lower(), (m.group(2) or "").strip()


def parse_alert_args(args: str) -> Optional[Tuple[str, float, str]]:
    """`threshold 15 up` / `amount 50k down` -> (kind, value, direction)."""
    parts = args.lower().split()
    if len(parts) != 3:
        return None
    kind, raw, direction = parts
    if kind not in ALERT_KINDS or direction not in DIRECTIONS:
        return None
    raw = raw.replace("$", "").replace("%", "").replace(",", "")
    try:
        value = float(raw[:-1]) * 1000.0 if raw.endswith("k") else float(raw)
    except ValueError:
        return None
    if value < 0:
        return None
    return kind, value, direction


def first_word(args: str) -> str:
    parts = (args or "").split()
    return parts[0] if parts else ""


def build_alert(chat_id: str, mint: str, message_id: int, kind: str, value: float, direction: str) -> MarketCapAlert:
    return MarketCapAlert(
        chat_id=str(chat_id),
        token_address=mint,
        message_id=message_id,
        kind=kind,
        threshold=value if kind == KIND_THRESHOLD else 0.0,
        amount=value if kind == KIND_AMOUNT else 0.0,
        direction=direction,
    )


# =========================
# COMMANDS
# =========================
async def cmd_setup(ctx: BotContext, chat_id: int, args: str) -> str:
    mint = normalize_mint(first_word(args))
    if not is_valid_mint(mint):
        return "Please provide a valid Solana token address."
    if not await ctx.store.add_subscription(str(chat_id), mint):
        return "You are already subscribed to this token."
    coin = await fetch_coin_data(ctx.session, mint)
    name = (coin or {}).get("name") or mint
    log.info(f"[SETUP] chat {chat_id} subscribed to {mint}")
    return f"Subscribed! You will be notified when {name} goes live or offline."


async def cmd_unsetup(ctx: BotContext, chat_id: int, args: str) -> str:
    mint = normalize_mint(first_word(args))
    if not mint:
        return "Please provide a token address."
    if await ctx.store.remove_subscription(str(chat_id), mint):
        return f"Unsubscribed from {mint}."
    return "This chat is not subscribed to that token."


async def cmd_ca(ctx: BotContext, chat_id: int, chat_type: str) -> str:
    if chat_type not in GROUP_TYPES:
        return "This command only works in groups."
    tokens = await ctx.store.find_tokens_by_chat(str(chat_id))
    if not tokens:
        return "No token setup for this group. Use /setup <token_address> to set one."
    return tokens[0]


async def admin_refusal(ctx: BotContext, chat: Dict[str, Any], user_id: Optional[int]) -> Optional[str]:
    """None when the caller may configure alerts here, otherwise the reply to send."""
    if chat.get("type") not in GROUP_TYPES:
        return None
    if user_id is None:
        return ADMIN_ONLY
    try:
        member = await ctx.tg.get_chat_member(chat["id"], user_id)
    except TelegramError as e:
        log.warning(f"[TG] admin check failed in chat {chat['id']}: {e}")
        return "Error checking permissions. Please try again."
    if (member or {}).get("status") not in ADMIN_STATUSES:
        return ADMIN_ONLY
    return None


async def cmd_notify(ctx: BotContext, chat_id: int, args: str) -> None:
    mint_raw, rest = (args.split(None, 1) + ["", ""])[:2]
    mint = normalize_mint(mint_raw)
    if not mint:
        await ctx.tg.send_message(chat_id, "Please provide a token address.")
        return
    if not is_valid_mint(mint):
        await ctx.tg.send_message(chat_id, "Please provide a valid Solana token address.")
        return

    if not rest.strip():
        await ctx.tg.send_message(chat_id, build_alert_menu_message(mint), reply_markup=alert_menu_kb())
        return

    parsed = parse_alert_args(rest)
    if parsed is None:
        await ctx.tg.send_message(chat_id, "Usage: /notify <tokenAddress> [threshold|amount] [value] [up|down]")
        return
    kind, value, direction = parsed

    display = await format_token_display(ctx.session, mint)
    draft = build_alert(str(chat_id), mint, 0, kind, value, direction)
    sent = await ctx.tg.send_message(chat_id, build_alert_created_message(display, draft))
    draft.message_id = sent["message_id"]
    if not await ctx.store.create_alert(draft):
        await ctx.tg.edit_message_text(
            chat_id, draft.message_id, f"You already have a market cap alert set for {mint}."
        )
        return
    log.info(f"[NOTIFY] chat {chat_id} alert {mint} {describe_alert(draft)}")


async def handle_alert_callback(ctx: BotContext, chat_id: int, message: Dict[str, Any], data: str) -> str:
    """mc_alert|<kind>|<value>|<direction> pressed on a /notify menu. Returns the callback answer."""
    m = MENU_TOKEN_RE.search(message.get("text") or "")
    if not m:
        return "Alert menu expired."
    mint = m.group(1)
    parts = data.split("|")
    if len(parts) != 4:
        return "Unknown action."
    _, kind, raw, direction = parts
    chat_key = str(chat_id)

    if kind == "delete":
        if await ctx.store.delete_alert(chat_key, mint):
            return f"Market cap alert deleted for {mint}."
        return f"No market cap alert set for {mint}."

    if kind not in ALERT_KINDS or direction not in DIRECTIONS:
        return "Unknown action."
    try:
        value = float(raw)
    except ValueError:
        return "Unknown action."

    alert = build_alert(chat_key, mint, message["message_id"], kind, value, direction)
    if await ctx.store.create_alert(alert):
        return f"Market cap alert set for {mint}!"

    existing = await ctx.store.find_alert(chat_key, mint)
    if existing is not None and existing.direction != direction:
        await ctx.store.update_alert_direction(chat_key, mint, message["message_id"], direction)
        return f"Market cap alert for {mint} now watches {direction.upper()}."
    return f"You already have a market cap alert set for {mint}."


# =========================
# TELEGRAM LOOP
# =========================
async def handle_update(ctx: BotContext, u: Dict[str, Any]) -> None:
    tg = ctx.tg

    # -------------------------
    # MESSAGE
    # -------------------------
    if "message" in u:
        msg = u["message"]
        chat = msg.get("chat") or {}
        chat_id = chat.get("id")
        if chat_id is None:
            return
        parsed = parse_command(msg.get("text") or "")
        if parsed is None:
            return
        cmd, args = parsed

        if cmd in ("start", "help"):
            await tg.send_message(chat_id, HELP_TEXT)
            return
        if cmd == "setup":
            await tg.send_message(chat_id, await cmd_setup(ctx, chat_id, args))
            return
        if cmd == "unsetup":
            await tg.send_message(chat_id, await cmd_unsetup(ctx, chat_id, args))
            return
        if cmd == "ca":
            await tg.send_message(chat_id, await cmd_ca(ctx, chat_id, chat.get("type") or ""))
            return
        if cmd == "notify":
            refusal = await admin_refusal(ctx, chat, (msg.get("from") or {}).get("id"))
            if refusal:
                await tg.send_message(chat_id, refusal)
                return
            await cmd_notify(ctx, chat_id, args)
            return
        if cmd == "alerts":
            alerts = await ctx.store.find_alerts_by_chat(str(chat_id))
            await tg.send_message(chat_id, build_alert_list_message(alerts))
            return
        return

    # -------------------------
    # CALLBACK
    # -------------------------
    if "callback_query" in u:
        cq = u["callback_query"]
        cq_id = cq.get("id")
        data = (cq.get("data") or "").strip()
        msg = cq.get("message") or {}
        chat = msg.get("chat") or {}
        chat_id = chat.get("id")
        answer = None
        if chat_id is not None and msg.get("message_id") is not None and data.startswith("mc_alert|"):
            answer = await admin_refusal(ctx, chat, (cq.get("from") or {}).get("id"))
            if answer is None:
                answer = await handle_alert_callback(ctx, chat_id, msg, data)
        if cq_id:
            await tg.answer_callback_query(cq_id, answer)


async def telegram_loop(ctx: BotContext) -> None:
    await ctx.tg.delete_webhook()
    offset = 0
    while True:
        try:
            updates = await ctx.tg.get_updates(offset=offset, timeout=TG_LONGPOLL_TIMEOUT)
        except TelegramError as e:
            log.warning(f"[TG] getUpdates failed: {e}")
            await asyncio.sleep(3)
            continue
        for u in updates:
            offset = max(offset, u.get("update_id", 0) + 1)
            try:
                await handle_update(ctx, u)
            except Exception:
                log.exception(f"[TG] handler error for update {u.get('update_id')}")
