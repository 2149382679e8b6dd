"""Conversation flow: language → photo → colour → finish → processing → result.

Handlers are picked by event kind (and callback prefix for buttons). Each
one validates the stored state before touching anything; the processing
sequence runs only while the per-identity lock is held.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from wrapbot.config import settings
from wrapbot.logging_config import get_logger, identity_logger
from wrapbot.schemas.bot import BotEvent, EventKind, Reply
from wrapbot.schemas.processor import ProcessorRequest
from wrapbot.schemas.session import AttributeChoice, Session
from wrapbot.services import catalog
from wrapbot.services.errors import (
    InvalidStateError,
    LockContentionError,
    ProcessorError,
    QuotaExceededError,
)
from wrapbot.services.lock_service import ProcessingLock
from wrapbot.services.processor_client import ProcessorClient
from wrapbot.services.result import Result
from wrapbot.services.session_store import SessionStore
from wrapbot.services.state_machine import (
    ConversationState,
    complete,
    require_state,
    start_processing,
    transition,
)
from wrapbot.services.usage_service import UsageTracker
from wrapbot.services.watermark_service import Watermarker

logger = get_logger("conversation_service")

Notify = Callable[[Reply], Awaitable[None]]
Handler = Callable[[BotEvent, Session, "_Outbox"], Awaitable[None]]


class _Outbox:
    """Collects replies, or sends them right away when the transport asked to be notified."""

    def __init__(self, notify: Optional[Notify] = None):
        self.notify = notify
        self.replies: list[Reply] = []

    async def emit(self, reply: Reply) -> None:
        if self.notify is not None:
            await self.notify(reply)
        else:
            self.replies.append(reply)


class ConversationService:
    def __init__(
        self,
        sessions: Optional[SessionStore] = None,
        usage: Optional[UsageTracker] = None,
        lock: Optional[ProcessingLock] = None,
        processor: Optional[ProcessorClient] = None,
        watermarker: Optional[Watermarker] = None,
        processor_timeout_seconds: Optional[float] = None,
        default_language: Optional[str] = None,
        contact_phone: Optional[str] = None,
    ):
        self.sessions = sessions or SessionStore()
        self.usage = usage or UsageTracker()
        self.lock = lock or ProcessingLock()
        self.processor = processor or ProcessorClient()
        self.watermarker = watermarker or Watermarker()
        self.processor_timeout_seconds = processor_timeout_seconds or settings.processor_timeout_seconds
        self.default_language = default_language or settings.default_language
        self.contact_phone = contact_phone if contact_phone is not None else settings.contact_phone

        self._commands: dict[str, Handler] = {
            "start": self._on_start,
            "help": self._on_help,
        }
        self._buttons: dict[str, Handler] = {
            "lang_": self._on_language,
            "color_": self._on_color,
            "finish_": self._on_finish,
            "result_": self._on_result,
        }

    def _msg(self, key: str, language: Optional[str], **fmt) -> str:
        return catalog.message(key, language, self.default_language, **fmt)

    def _resolve_handler(self, event: BotEvent) -> Handler:
        if event.kind == EventKind.COMMAND:
            return self._commands.get(event.payload.lower(), self._on_help)
        if event.kind == EventKind.PHOTO:
            return self._on_photo
        if event.kind == EventKind.BUTTON:
            for prefix, handler in self._buttons.items():
                if event.payload.startswith(prefix):
                    return handler
            return self._on_unknown_button
        return self._on_text

    async def handle_event(self, event: BotEvent, notify: Optional[Notify] = None) -> list[Reply]:
        """Run the handler for `event` and return the replies not yet sent through `notify`."""
        log = identity_logger(logger, event.identity)
        outbox = _Outbox(notify)
        is_button = event.kind == EventKind.BUTTON
        session: Optional[Session] = None

        try:
            session = await self.sessions.get(event.identity)
            handler = self._resolve_handler(event)
            await handler(event, session, outbox)
        except InvalidStateError as e:
            log.info("Event rejected for current state", context={"kind": event.kind.value, "error": str(e)})
            await outbox.emit(Reply(text=self._msg("SESSION_EXPIRED", session.language), toast=is_button))
        except QuotaExceededError:
            log.info("Usage limit reached", context={"limit": self.usage.limit})
            language = await self._current_language(event.identity, session)
            await outbox.emit(Reply(text=self._msg("LIMIT_EXCEEDED", language)))
        except LockContentionError:
            log.info("Duplicate processing request ignored")
        except Exception as e:
            log.error(f"Event handling failed: {e}", exc_info=True)
            language = session.language if session else None
            await outbox.emit(Reply(text=self._msg("ERROR", language)))

        return outbox.replies

    async def _current_language(self, identity: str, session: Optional[Session]) -> Optional[str]:
        fresh = await self.sessions.get(identity)
        return fresh.language or (session.language if session else None)

    async def _ensure_quota(self, identity: str) -> None:
        if await self.usage.has_exceeded(identity):
            raise QuotaExceededError(identity, self.usage.limit)

    # === COMMANDS ===

    async def _on_start(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        session = await self.sessions.reset(event.identity, ConversationState.AWAITING_LANGUAGE)
        await outbox.emit(Reply(text=self._msg("WELCOME", session.language), keyboard=catalog.language_keyboard()))

    async def _on_help(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        await outbox.emit(Reply(text=self._msg("HELP", session.language)))

    # === LANGUAGE ===

    async def _on_language(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        require_state(session.state, ConversationState.AWAITING_LANGUAGE)

        language = event.payload.removeprefix("lang_")
        if language not in catalog.LANGUAGES:
            await outbox.emit(Reply(text=self._msg("INVALID_CHOICE", session.language), toast=True))
            return

        if await self.usage.has_exceeded(event.identity):
            # Keep the language so the limit notice and later visits are localized.
            await self.sessions.update(event.identity, language=language)
            await outbox.emit(Reply(text="⚠️", toast=True))
            raise QuotaExceededError(event.identity, self.usage.limit)

        await self.sessions.update(
            event.identity,
            language=language,
            state=transition(session.state, ConversationState.AWAITING_SUBJECT_IMAGE),
        )
        await outbox.emit(Reply(text=f"✅ {catalog.LANGUAGE_NAMES[language]}", toast=True))
        await outbox.emit(Reply(text=self._msg("SEND_VEHICLE", language)))

    # === SUBJECT IMAGE ===

    async def _on_photo(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        if session.state != ConversationState.AWAITING_SUBJECT_IMAGE:
            await outbox.emit(Reply(text=self._msg("UNEXPECTED_IMAGE", session.language)))
            return

        if not event.payload:
            await outbox.emit(Reply(text=self._msg("INVALID_IMAGE", session.language)))
            return

        await self._ensure_quota(event.identity)

        await self.sessions.update(
            event.identity,
            state=transition(session.state, ConversationState.AWAITING_COLOR),
            input_image_ref=event.payload,
            input_image_handle=event.file_handle,
            selected_attributes={},
        )
        await outbox.emit(
            Reply(
                text=self._msg("CHOOSE_COLOR", session.language),
                keyboard=catalog.color_keyboard(session.language, self.default_language),
            )
        )

    # === ATTRIBUTES ===

    def _choice(self, options: list[dict], key: str, language: Optional[str]) -> Optional[AttributeChoice]:
        option = catalog.find_option(options, key)
        if option is None:
            return None
        return AttributeChoice(value=option["key"], display=catalog.display_name(option, language, self.default_language))

    async def _on_color(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        require_state(session.state, ConversationState.AWAITING_COLOR)

        choice = self._choice(catalog.COLORS, event.payload.removeprefix("color_"), session.language)
        if choice is None:
            await outbox.emit(Reply(text=self._msg("INVALID_CHOICE", session.language), toast=True))
            return

        await self.sessions.update(
            event.identity,
            state=transition(session.state, ConversationState.AWAITING_FINISH),
            selected_attributes={**session.selected_attributes, catalog.COLOR_CATEGORY: choice},
        )
        await outbox.emit(Reply(text=f"✅ {choice.display}", toast=True))
        await outbox.emit(
            Reply(
                text=self._msg("CHOOSE_FINISH", session.language),
                keyboard=catalog.finish_keyboard(session.language, self.default_language),
            )
        )

    async def _on_finish(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        if await self.lock.is_locked(event.identity):
            await outbox.emit(Reply(text=self._msg("ALREADY_PROCESSING", session.language), toast=True))
            return

        require_state(session.state, ConversationState.AWAITING_FINISH)

        choice = self._choice(catalog.FINISHES, event.payload.removeprefix("finish_"), session.language)
        if choice is None:
            await outbox.emit(Reply(text=self._msg("INVALID_CHOICE", session.language), toast=True))
            return

        await self._run_processing(event.identity, choice, outbox)

    # === PROCESSING ===

    async def _run_processing(self, identity: str, finish: AttributeChoice, outbox: _Outbox) -> None:
        log = identity_logger(logger, identity)

        async with self.lock.hold(identity) as acquired:
            if not acquired:
                raise LockContentionError(identity)

            # The state may have moved on between the first read and the lock.
            session = await self.sessions.get(identity)
            require_state(session.state, ConversationState.AWAITING_FINISH)
            await self._ensure_quota(identity)

            session = await self.sessions.update(
                identity,
                state=start_processing(session.state),
                selected_attributes={**session.selected_attributes, catalog.FINISH_CATEGORY: finish},
            )
            language = session.language
            recorded = False

            try:
                await outbox.emit(Reply(text=f"✅ {finish.display}", toast=True))
                await outbox.emit(Reply(text=self._msg("PROCESSING", language)))

                outcome = await self._call_processor(identity, session)
                if not outcome.ok:
                    log.warning("Processing failed", context={"error": outcome.error, "code": outcome.error_code})
                    await self._fail(identity, language, outbox)
                    return

                await self._record_success(identity, session)
                recorded = True
                await self._deliver(identity, session, outcome.value, outbox)
            except Exception as e:
                if recorded:
                    log.error(f"Result delivery failed after charging: {e}", exc_info=True)
                    return
                log.error(f"Processing sequence crashed: {e}", exc_info=True)
                await self._fail(identity, language, outbox)

    async def _call_processor(self, identity: str, session: Session) -> Result[str]:
        color = session.attribute_value(catalog.COLOR_CATEGORY)
        finish = session.attribute_value(catalog.FINISH_CATEGORY)
        if not session.input_image_ref or not color or not finish:
            return Result.failure("Session is missing collected input", "missing_input")

        request = ProcessorRequest(
            chat_id=identity,
            vehicle_image=session.input_image_ref,
            selected_color=color,
            selected_texture=finish,
        )
        try:
            response = await asyncio.wait_for(self.processor.process(request), timeout=self.processor_timeout_seconds)
        except asyncio.TimeoutError:
            return Result.failure("Processing timed out", "processor_timeout")
        except ProcessorError as e:
            return Result.failure(str(e), e.code)

        if not response.success or not response.output_image:
            return Result.failure(response.error or "Processor returned no image", "processor_failed")
        return Result.success(response.output_image)

    async def _record_success(self, identity: str, session: Session) -> None:
        """Mark the session COMPLETED, then charge one generation."""
        await self.sessions.update(identity, state=complete(session.state))
        await self.usage.increment(identity)

    async def _deliver(self, identity: str, session: Session, output_image: str, outbox: _Outbox) -> None:
        language = session.language

        image = await self.watermarker.apply_or_fallback(output_image)
        caption = self._msg(
            "RESULT_CAPTION",
            language,
            color=session.attribute_display(catalog.COLOR_CATEGORY),
            finish=session.attribute_display(catalog.FINISH_CATEGORY),
        )
        keyboard = catalog.result_keyboard(language, self.default_language, with_call=bool(self.contact_phone))
        if image.degraded:
            await outbox.emit(Reply(text=caption, photo_url=image.value, keyboard=keyboard))
        else:
            await outbox.emit(Reply(text=caption, photo_bytes=image.value, keyboard=keyboard))

        remaining = await self.usage.remaining(identity)
        await outbox.emit(Reply(text=self._msg("REMAINING", language, remaining=remaining)))

    async def _fail(self, identity: str, language: Optional[str], outbox: _Outbox) -> None:
        await self.sessions.reset(identity)
        await outbox.emit(Reply(text=self._msg("ERROR", language)))

    # === RESULT ACTIONS ===

    async def _on_result(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        action = event.payload.removeprefix("result_")

        if action == "another":
            require_state(session.state, ConversationState.COMPLETED)
            await self._ensure_quota(event.identity)
            await self.sessions.reset(
                event.identity, transition(session.state, ConversationState.AWAITING_SUBJECT_IMAGE)
            )
            await outbox.emit(Reply(text="🎨", toast=True))
            await outbox.emit(Reply(text=self._msg("SEND_VEHICLE", session.language)))
            return

        if action == "call" and self.contact_phone:
            await outbox.emit(Reply(text="📞", toast=True))
            await outbox.emit(Reply(text=f"📞 {self.contact_phone}"))
            return

        await self._on_unknown_button(event, session, outbox)

    async def _on_unknown_button(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        await outbox.emit(Reply(text=self._msg("INVALID_CHOICE", session.language), toast=True))

    # === FREE TEXT ===

    async def _on_text(self, event: BotEvent, session: Session, outbox: _Outbox) -> None:
        if session.state == ConversationState.IDLE or not session.language:
            await outbox.emit(Reply(text=self._msg("START_HINT", session.language)))
        else:
            await outbox.emit(Reply(text=self._msg("UNEXPECTED_TEXT", session.language)))
