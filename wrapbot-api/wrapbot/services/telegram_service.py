import json
from typing import Optional

import httpx

from wrapbot.logging_config import get_logger
from wrapbot.schemas.bot import Reply

logger = get_logger("telegram_service")


class TelegramService:
    """Async client for the Bot API calls the conversation needs."""

    BASE_URL = "https://api.telegram.org/bot{token}"
    FILE_URL = "https://api.telegram.org/file/bot{token}/{path}"

    def __init__(self, bot_token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(token=bot_token)
        self._transport = transport

    async def _make_request(self, method: str, data: Optional[dict] = None, files: Optional[dict] = None) -> dict:
        """Make request to Telegram API."""
        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                if files:
                    response = await client.post(url, data=data or {}, files=files)
                else:
                    response = await client.post(url, json=data or {})
                return response.json()
        except Exception as e:
            logger.error(f"Telegram API error: {e}", extra={"context": {"method": method}})
            return {"ok": False, "error": str(e)}

    async def send_message(self, chat_id: str, text: str, reply_markup: Optional[dict] = None) -> dict:
        data = {"chat_id": chat_id, "text": text}
        if reply_markup:
            data["reply_markup"] = reply_markup
        return await self._make_request("sendMessage", data)

    async def send_photo(
        self,
        chat_id: str,
        photo: str | bytes,
        caption: Optional[str] = None,
        reply_markup: Optional[dict] = None,
    ) -> dict:
        """Send a photo by URL or as uploaded PNG bytes."""
        data = {"chat_id": chat_id}
        if caption:
            data["caption"] = caption

        if isinstance(photo, str):
            data["photo"] = photo
            if reply_markup:
                data["reply_markup"] = reply_markup
            return await self._make_request("sendPhoto", data=data)

        # multipart form fields must be strings
        if reply_markup:
            data["reply_markup"] = json.dumps(reply_markup)
        return await self._make_request("sendPhoto", data=data, files={"photo": ("result.png", photo, "image/png")})

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> dict:
        data = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        return await self._make_request("answerCallbackQuery", data)

    async def get_file_url(self, file_id: str) -> Optional[str]:
        """Resolve an uploaded file id to a downloadable URL."""
        result = await self._make_request("getFile", {"file_id": file_id})
        file_path = (result.get("result") or {}).get("file_path") if result.get("ok") else None
        if not file_path:
            logger.warning(f"Failed to resolve file: {result}")
            return None
        return self.FILE_URL.format(token=self.bot_token, path=file_path)

    async def deliver(self, chat_id: str, reply: Reply, callback_query_id: Optional[str] = None) -> dict:
        """Send one conversation reply the way its shape asks for."""
        if reply.toast:
            if not callback_query_id:
                return {"ok": True, "skipped": "toast without callback"}
            return await self.answer_callback_query(callback_query_id, reply.text)
        if reply.photo_bytes is not None:
            return await self.send_photo(chat_id, reply.photo_bytes, caption=reply.text, reply_markup=reply.keyboard)
        if reply.photo_url:
            return await self.send_photo(chat_id, reply.photo_url, caption=reply.text, reply_markup=reply.keyboard)
        return await self.send_message(chat_id, reply.text or "", reply_markup=reply.keyboard)
