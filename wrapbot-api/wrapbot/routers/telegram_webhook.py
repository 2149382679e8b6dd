import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Request

from wrapbot.config import settings
from wrapbot.logging_config import get_logger
from wrapbot.schemas.bot import BotEvent, EventKind, Reply
from wrapbot.schemas.telegram import TelegramUpdate, TelegramWebhookResponse
from wrapbot.services.conversation_service import ConversationService
from wrapbot.services.telegram_service import TelegramService

logger = get_logger("telegram_webhook")

router = APIRouter()

_telegram: Optional[TelegramService] = None
_conversation: Optional[ConversationService] = None


def get_telegram() -> TelegramService:
    global _telegram
    if _telegram is None:
        _telegram = TelegramService(settings.bot_token or "")
    return _telegram


def get_conversation() -> ConversationService:
    global _conversation
    if _conversation is None:
        _conversation = ConversationService()
    return _conversation


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    try:
        return await request.json()
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    for enc in ("utf-8", "latin-1"):
        try:
            decoded = raw.decode(enc, errors="replace")
            return json.loads(decoded)
        except ValueError:
            continue

    logger.error("Failed to decode Telegram webhook payload after fallbacks")
    return None


def _command_name(text: str) -> str:
    # "/start@WrapBot payload" -> "start"
    return text[1:].split(maxsplit=1)[0].split("@", 1)[0] if len(text) > 1 else ""


async def build_event(update: TelegramUpdate, telegram: TelegramService) -> Optional[BotEvent]:
    """Translate a Telegram update into a conversation event, resolving photo URLs."""
    callback = update.callback_query
    if callback:
        chat_id = callback.message.chat.id if callback.message else callback.from_user.id
        return BotEvent(
            identity=str(chat_id),
            kind=EventKind.BUTTON,
            payload=callback.data or "",
            callback_id=callback.id,
        )

    message = update.message
    if not message:
        return None

    identity = str(message.chat.id)

    file_id = None
    largest = message.largest_photo()
    if largest:
        file_id = largest.file_id
    elif message.document and message.document.is_image:
        file_id = message.document.file_id

    if file_id:
        file_url = await telegram.get_file_url(file_id)
        return BotEvent(identity=identity, kind=EventKind.PHOTO, payload=file_url or "", file_handle=file_id)

    text = (message.text or "").strip()
    if not text:
        return None
    if text.startswith("/"):
        return BotEvent(identity=identity, kind=EventKind.COMMAND, payload=_command_name(text))
    return BotEvent(identity=identity, kind=EventKind.TEXT, payload=text)


async def dispatch_update(
    update: TelegramUpdate,
    telegram: Optional[TelegramService] = None,
    conversation: Optional[ConversationService] = None,
) -> None:
    """Run the conversation for one update, sending replies as they are produced."""
    telegram = telegram or get_telegram()
    conversation = conversation or get_conversation()

    event = await build_event(update, telegram)
    if event is None:
        logger.debug(f"Update {update.update_id} has no actionable content")
        return

    callback_answered = False

    async def notify(reply: Reply) -> None:
        nonlocal callback_answered
        if reply.toast:
            if callback_answered:
                return
            callback_answered = True
        await telegram.deliver(event.identity, reply, event.callback_id)

    try:
        await conversation.handle_event(event, notify=notify)
    finally:
        # Telegram keeps the button spinner until the query is answered.
        if event.callback_id and not callback_answered:
            await telegram.answer_callback_query(event.callback_id)


@router.post("/telegram-webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Accept a Telegram update and handle it after the response is sent,
    since processing can take minutes.
    """
    try:
        body = await parse_telegram_update(request)
        if body is None:
            return TelegramWebhookResponse(success=False, message="Invalid telegram payload")

        update = TelegramUpdate(**body)
        background_tasks.add_task(dispatch_update, update)
        return TelegramWebhookResponse(success=True, message="Accepted")

    except Exception as e:
        logger.error(f"Telegram webhook error: {e}", exc_info=True)
        return TelegramWebhookResponse(success=False, message=str(e))
