import asyncio
from typing import Any, Dict, List, Optional, Union

import aiohttp

from .config import HTTP_TIMEOUT_SECONDS, TG_LONGPOLL_GRACE

ChatId = Union[int, str]


class TelegramError(Exception):
    """A failed Bot API call: an `ok: false` reply or a transport failure."""

    def __init__(self, method: str, description: str, error_code: Optional[int] = None):
        super().__init__(f"Telegram API error {method}: {error_code} {description}")
        self.method = method
        self.description = description or ""
        self.error_code = error_code

    @property
    def is_not_modified(self) -> bool:
        # editing a message with identical content
        return "message is not modified" in self.description.lower()


# =========================
# TELEGRAM API (long polling)
# =========================
class TelegramAPI:
    def __init__(self, token: str, session: aiohttp.ClientSession):
        self.base = f"https://api.telegram.org/bot{token}"
        self.session = session

    async def _post(self, method: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.base}/{method}"
        try:
            async with self.session.post(
                url, json=payload, timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
            ) as r:
                data = await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TelegramError(method, f"{type(e).__name__} {e!r}") from e
        if not isinstance(data, dict) or not data.get("ok"):
            desc = data.get("description", "") if isinstance(data, dict) else repr(data)
            code = data.get("error_code") if isinstance(data, dict) else None
            raise TelegramError(method, desc, code)
        return data.get("result")

    async def delete_webhook(self) -> None:
        await self._post("deleteWebhook", {"drop_pending_updates": True})

    async def get_updates(self, offset: int, timeout: int = 30) -> List[Dict[str, Any]]:
        total = timeout + TG_LONGPOLL_GRACE
        url = f"{self.base}/getUpdates"
        params = {
            "offset": offset,
            "timeout": timeout,
            "allowed_updates": '["message", "callback_query"]',
        }
        try:
            async with self.session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=total)) as r:
                data = await r.json(content_type=None)
        except asyncio.TimeoutError:
            return []
        except (aiohttp.ClientError, ValueError) as e:
            # non-JSON bodies (HTML 502 pages) count as a failed poll
            raise TelegramError("getUpdates", f"{type(e).__name__} {e!r}") from e
        if not isinstance(data, dict) or not data.get("ok"):
            raise TelegramError("getUpdates", repr(data))
        return data.get("result", []) or []

    async def send_message(
        self, chat_id: ChatId, text: str, reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Returns the sent Message object; its `message_id` is what gets pinned or edited later."""
        payload = {"chat_id": chat_id, "text": text, "disable_web_page_preview": True}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._post("sendMessage", payload)

    async def edit_message_text(
        self, chat_id: ChatId, message_id: int, text: str, reply_markup: Optional[Dict[str, Any]] = None
    ) -> None:
        payload = {"chat_id": chat_id, "message_id": message_id, "text": text, "disable_web_page_preview": True}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        await self._post("editMessageText", payload)

    async def pin_chat_message(self, chat_id: ChatId, message_id: int, disable_notification: bool = True) -> None:
        await self._post(
            "pinChatMessage",
            {"chat_id": chat_id, "message_id": message_id, "disable_notification": disable_notification},
        )

    async def unpin_chat_message(self, chat_id: ChatId, message_id: int) -> None:
        await self._post("unpinChatMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        payload = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
            payload["show_alert"] = False
        await self._post("answerCallbackQuery", payload)

    async def get_chat_member(self, chat_id: ChatId, user_id: int) -> Dict[str, Any]:
        return await self._post("getChatMember", {"chat_id": chat_id, "user_id": user_id})
