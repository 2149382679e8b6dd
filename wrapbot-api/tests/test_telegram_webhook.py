import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from wrapbot.main import app
from wrapbot.routers.telegram_webhook import build_event, dispatch_update
from wrapbot.schemas.bot import EventKind, Reply
from wrapbot.schemas.telegram import TelegramCallbackQuery, TelegramMessage, TelegramUpdate
from wrapbot.services.telegram_service import TelegramService

CHAT = {"id": 555, "type": "private"}
USER = {"id": 777, "is_bot": False, "first_name": "Dave"}


def _message(**fields) -> dict:
    return {"message_id": 10, "date": 1760000000, "chat": CHAT, "from": USER, **fields}


def _photo_sizes() -> list[dict]:
    return [
        {"file_id": "small", "file_unique_id": "s", "width": 90, "height": 60, "file_size": 1200},
        {"file_id": "large", "file_unique_id": "l", "width": 1280, "height": 853, "file_size": 98000},
        {"file_id": "medium", "file_unique_id": "m", "width": 320, "height": 213, "file_size": 14000},
    ]


class FakeTelegram:
    def __init__(self, file_url: str | None = "https://api.telegram.org/file/botT/photos/car.jpg"):
        self.file_url = file_url
        self.delivered = []
        self.answered = []
        self.file_requests = []

    async def get_file_url(self, file_id):
        self.file_requests.append(file_id)
        return self.file_url

    async def deliver(self, chat_id, reply, callback_query_id=None):
        self.delivered.append((chat_id, reply, callback_query_id))
        return {"ok": True}

    async def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append(callback_query_id)
        return {"ok": True}


class ScriptedConversation:
    """Emits a fixed list of replies through notify, then optionally raises."""

    def __init__(self, replies, error=None):
        self.replies = replies
        self.error = error
        self.events = []

    async def handle_event(self, event, notify=None):
        self.events.append(event)
        for reply in self.replies:
            await notify(reply)
        if self.error:
            raise self.error
        return []


class TestTelegramSchemas:
    def test_message_maps_from_field(self):
        msg = TelegramMessage(**_message(text="hi"))
        assert msg.from_user.first_name == "Dave"
        assert msg.chat.id == 555

    def test_largest_photo_picked(self):
        msg = TelegramMessage(**_message(photo=_photo_sizes()))
        assert msg.largest_photo().file_id == "large"

    def test_no_photo(self):
        assert TelegramMessage(**_message(text="hi")).largest_photo() is None

    def test_document_image_detection(self):
        msg = TelegramMessage(
            **_message(document={"file_id": "doc", "file_unique_id": "d", "mime_type": "image/jpeg"})
        )
        assert msg.document.is_image is True

    def test_callback_query_from_update_payload(self):
        update = TelegramUpdate(
            update_id=1,
            callback_query={"id": "cb", "from": USER, "data": "color_red", "message": _message(text="pick")},
        )
        assert isinstance(update.callback_query, TelegramCallbackQuery)
        assert update.callback_query.from_user.id == 777
        assert update.callback_query.data == "color_red"


class TestBuildEvent:
    @pytest.mark.asyncio
    async def test_command_strips_bot_mention(self):
        update = TelegramUpdate(update_id=1, message=_message(text="/start@WrapBot ref42"))

        event = await build_event(update, FakeTelegram())

        assert event.kind == EventKind.COMMAND
        assert event.payload == "start"
        assert event.identity == "555"

    @pytest.mark.asyncio
    async def test_plain_text(self):
        update = TelegramUpdate(update_id=1, message=_message(text="  hello  "))

        event = await build_event(update, FakeTelegram())

        assert event.kind == EventKind.TEXT
        assert event.payload == "hello"

    @pytest.mark.asyncio
    async def test_photo_resolves_largest_size(self):
        telegram = FakeTelegram()
        update = TelegramUpdate(update_id=1, message=_message(photo=_photo_sizes()))

        event = await build_event(update, telegram)

        assert event.kind == EventKind.PHOTO
        assert event.payload == "https://api.telegram.org/file/botT/photos/car.jpg"
        assert event.file_handle == "large"
        assert telegram.file_requests == ["large"]

    @pytest.mark.asyncio
    async def test_image_document_counts_as_photo(self):
        update = TelegramUpdate(
            update_id=1,
            message=_message(document={"file_id": "doc", "file_unique_id": "d", "mime_type": "image/png"}),
        )

        event = await build_event(update, FakeTelegram())

        assert event.kind == EventKind.PHOTO
        assert event.file_handle == "doc"

    @pytest.mark.asyncio
    async def test_unresolvable_photo_has_empty_payload(self):
        update = TelegramUpdate(update_id=1, message=_message(photo=_photo_sizes()))

        event = await build_event(update, FakeTelegram(file_url=None))

        assert event.kind == EventKind.PHOTO
        assert event.payload == ""

    @pytest.mark.asyncio
    async def test_non_image_document_without_text_ignored(self):
        update = TelegramUpdate(
            update_id=1,
            message=_message(document={"file_id": "doc", "file_unique_id": "d", "mime_type": "application/pdf"}),
        )

        assert await build_event(update, FakeTelegram()) is None

    @pytest.mark.asyncio
    async def test_callback_uses_message_chat(self):
        update = TelegramUpdate(
            update_id=1,
            callback_query={"id": "cb-9", "from": USER, "data": "finish_gloss", "message": _message(text="pick")},
        )

        event = await build_event(update, FakeTelegram())

        assert event.kind == EventKind.BUTTON
        assert event.identity == "555"
        assert event.payload == "finish_gloss"
        assert event.callback_id == "cb-9"

    @pytest.mark.asyncio
    async def test_callback_without_message_uses_sender(self):
        update = TelegramUpdate(update_id=1, callback_query={"id": "cb", "from": USER, "data": "lang_en"})

        event = await build_event(update, FakeTelegram())

        assert event.identity == "777"

    @pytest.mark.asyncio
    async def test_empty_update_ignored(self):
        assert await build_event(TelegramUpdate(update_id=1), FakeTelegram()) is None


class TestDispatchUpdate:
    def _button_update(self) -> TelegramUpdate:
        return TelegramUpdate(
            update_id=1,
            callback_query={"id": "cb-1", "from": USER, "data": "color_red", "message": _message(text="pick")},
        )

    @pytest.mark.asyncio
    async def test_only_first_toast_answers_callback(self):
        telegram = FakeTelegram()
        conversation = ScriptedConversation(
            [Reply(text="✅ Red", toast=True), Reply(text="second", toast=True), Reply(text="Choose a finish")]
        )

        await dispatch_update(self._button_update(), telegram=telegram, conversation=conversation)

        assert [reply.text for _, reply, _ in telegram.delivered] == ["✅ Red", "Choose a finish"]
        assert all(chat_id == "555" for chat_id, _, _ in telegram.delivered)
        assert telegram.answered == []

    @pytest.mark.asyncio
    async def test_unanswered_callback_is_acknowledged(self):
        telegram = FakeTelegram()

        await dispatch_update(self._button_update(), telegram=telegram, conversation=ScriptedConversation([]))

        assert telegram.answered == ["cb-1"]

    @pytest.mark.asyncio
    async def test_callback_acknowledged_even_when_handler_fails(self):
        telegram = FakeTelegram()
        conversation = ScriptedConversation([], error=RuntimeError("redis down"))

        with pytest.raises(RuntimeError):
            await dispatch_update(self._button_update(), telegram=telegram, conversation=conversation)

        assert telegram.answered == ["cb-1"]

    @pytest.mark.asyncio
    async def test_message_without_content_skipped(self):
        conversation = ScriptedConversation([])

        await dispatch_update(TelegramUpdate(update_id=1), telegram=FakeTelegram(), conversation=conversation)

        assert conversation.events == []


class TestTelegramService:
    @pytest.mark.asyncio
    async def test_get_file_url(self):
        def handler(request):
            assert request.url.path == "/botTOKEN/getFile"
            return httpx.Response(200, json={"ok": True, "result": {"file_path": "photos/file_1.jpg"}})

        service = TelegramService("TOKEN", transport=httpx.MockTransport(handler))

        assert await service.get_file_url("abc") == "https://api.telegram.org/file/botTOKEN/photos/file_1.jpg"

    @pytest.mark.asyncio
    async def test_get_file_url_failure(self):
        def handler(request):
            return httpx.Response(400, json={"ok": False, "description": "Bad Request: invalid file_id"})

        service = TelegramService("TOKEN", transport=httpx.MockTransport(handler))

        assert await service.get_file_url("abc") is None

    @pytest.mark.asyncio
    async def test_deliver_text_with_keyboard(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        service = TelegramService("TOKEN", transport=httpx.MockTransport(handler))
        keyboard = {"inline_keyboard": [[{"text": "Red", "callback_data": "color_red"}]]}

        await service.deliver("555", Reply(text="Choose", keyboard=keyboard))

        assert seen["path"] == "/botTOKEN/sendMessage"
        assert seen["body"] == {"chat_id": "555", "text": "Choose", "reply_markup": keyboard}

    @pytest.mark.asyncio
    async def test_deliver_photo_bytes_uploads_multipart(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.read()
            return httpx.Response(200, json={"ok": True})

        service = TelegramService("TOKEN", transport=httpx.MockTransport(handler))

        await service.deliver("555", Reply(text="Done", photo_bytes=b"\x89PNG-data"))

        assert seen["path"] == "/botTOKEN/sendPhoto"
        assert seen["content_type"].startswith("multipart/form-data")
        assert b"\x89PNG-data" in seen["body"]

    @pytest.mark.asyncio
    async def test_toast_answers_callback(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        service = TelegramService("TOKEN", transport=httpx.MockTransport(handler))

        await service.deliver("555", Reply(text="✅ Red", toast=True), callback_query_id="cb-1")

        assert seen["path"] == "/botTOKEN/answerCallbackQuery"
        assert seen["body"] == {"callback_query_id": "cb-1", "text": "✅ Red"}

    @pytest.mark.asyncio
    async def test_toast_without_callback_is_skipped(self):
        def handler(request):
            raise AssertionError("no request expected")

        service = TelegramService("TOKEN", transport=httpx.MockTransport(handler))

        result = await service.deliver("555", Reply(text="✅", toast=True))

        assert result["ok"] is True

    @pytest.mark.asyncio
    async def test_transport_error_reported_not_raised(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = TelegramService("TOKEN", transport=httpx.MockTransport(handler))

        result = await service.send_message("555", "hi")

        assert result["ok"] is False


class TestWebhookEndpoint:
    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_update_accepted_and_dispatched(self, client):
        with patch("wrapbot.routers.telegram_webhook.dispatch_update", new_callable=AsyncMock) as dispatch:
            response = client.post("/telegram-webhook", json={"update_id": 42, "message": _message(text="/start")})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Accepted"}
        dispatch.assert_awaited_once()
        assert dispatch.await_args.args[0].update_id == 42

    def test_unparseable_body_rejected(self, client):
        with patch("wrapbot.routers.telegram_webhook.dispatch_update", new_callable=AsyncMock) as dispatch:
            response = client.post(
                "/telegram-webhook", content=b"not json", headers={"content-type": "application/json"}
            )

        assert response.json()["success"] is False
        dispatch.assert_not_called()

    def test_invalid_update_shape_reported(self, client):
        with patch("wrapbot.routers.telegram_webhook.dispatch_update", new_callable=AsyncMock) as dispatch:
            response = client.post("/telegram-webhook", json={"message": "missing update id"})

        assert response.json()["success"] is False
        dispatch.assert_not_called()
