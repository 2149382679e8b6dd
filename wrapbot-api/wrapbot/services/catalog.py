"""Colours, finishes, localized texts and inline keyboards."""

from typing import Optional

LANGUAGES = ("ru", "en")
LANGUAGE_NAMES = {"ru": "Русский", "en": "English"}

COLOR_CATEGORY = "color"
FINISH_CATEGORY = "finish"

# Keys are what the processor receives; they are always English.
COLORS = [
    {"key": "red", "ru": "Красный", "en": "Red"},
    {"key": "blue", "ru": "Синий", "en": "Blue"},
    {"key": "black", "ru": "Чёрный", "en": "Black"},
    {"key": "white", "ru": "Белый", "en": "White"},
    {"key": "silver", "ru": "Серебристый", "en": "Silver"},
    {"key": "green", "ru": "Зелёный", "en": "Green"},
    {"key": "yellow", "ru": "Жёлтый", "en": "Yellow"},
    {"key": "orange", "ru": "Оранжевый", "en": "Orange"},
    {"key": "purple", "ru": "Фиолетовый", "en": "Purple"},
    {"key": "pink", "ru": "Розовый", "en": "Pink"},
]

FINISHES = [
    {"key": "gloss", "ru": "Глянец", "en": "Gloss"},
    {"key": "matte", "ru": "Матовый", "en": "Matte"},
]

MESSAGES = {
    "WELCOME": {
        "ru": "🚗 Добро пожаловать в Dave Wrap!\n\nВыберите язык / Choose your language:",
        "en": "🚗 Welcome to Dave Wrap!\n\nВыберите язык / Choose your language:",
    },
    "HELP": {
        "ru": (
            "🔧 Как пользоваться ботом:\n\n"
            "1. Отправьте /start\n"
            "2. Выберите язык\n"
            "3. Загрузите чёткое фото автомобиля\n"
            "4. Выберите цвет и фактуру плёнки\n"
            "5. Дождитесь результата ✨\n\n"
            "Лучше всего подходят фото сбоку или спереди при хорошем освещении."
        ),
        "en": (
            "🔧 How to use this bot:\n\n"
            "1. Send /start\n"
            "2. Pick a language\n"
            "3. Upload a clear photo of the vehicle\n"
            "4. Choose a colour and a finish\n"
            "5. Wait for the result ✨\n\n"
            "Side or front angles in good light work best."
        ),
    },
    "SEND_VEHICLE": {
        "ru": "📸 Отправьте чёткое фото автомобиля.",
        "en": "📸 Please send a clear photo of the vehicle.",
    },
    "CHOOSE_COLOR": {
        "ru": "🎨 Отличное фото! Выберите цвет:",
        "en": "🎨 Great photo! Now choose a colour:",
    },
    "CHOOSE_FINISH": {
        "ru": "✨ Выберите фактуру:",
        "en": "✨ Choose a finish:",
    },
    "PROCESSING": {
        "ru": "⏳ Обрабатываю изображение... Это может занять до пары минут.",
        "en": "⏳ Processing your image... This may take up to a couple of minutes.",
    },
    "RESULT_CAPTION": {
        "ru": "✅ Готово! {color}, {finish}.",
        "en": "✅ Done! {color}, {finish}.",
    },
    "REMAINING": {
        "ru": "ℹ️ Осталось генераций: {remaining}",
        "en": "ℹ️ Generations left: {remaining}",
    },
    "ERROR": {
        "ru": "❌ Что-то пошло не так. Попробуйте снова: /start",
        "en": "❌ Something went wrong. Please try again with /start",
    },
    "LIMIT_EXCEEDED": {
        "ru": "⚠️ Лимит генераций исчерпан. Попробуйте позже.",
        "en": "⚠️ You are out of generations for now. Please come back later.",
    },
    "SESSION_EXPIRED": {
        "ru": "⌛ Сессия устарела, начните заново: /start",
        "en": "⌛ This session has expired, please restart with /start",
    },
    "UNEXPECTED_IMAGE": {
        "ru": "🤔 Сейчас фото не требуется. Используйте кнопки или /start.",
        "en": "🤔 I wasn't expecting a photo right now. Use the buttons or /start.",
    },
    "INVALID_IMAGE": {
        "ru": "⚠️ Не удалось получить фото. Отправьте изображение ещё раз.",
        "en": "⚠️ Couldn't read that photo. Please send the image again.",
    },
    "UNEXPECTED_TEXT": {
        "ru": "🤔 Пожалуйста, используйте кнопки или отправьте фото.",
        "en": "🤔 Please use the buttons or send a photo.",
    },
    "START_HINT": {
        "ru": "👋 Используйте /start, чтобы начать / Use /start to begin",
        "en": "👋 Use /start to begin / Используйте /start",
    },
    "INVALID_CHOICE": {
        "ru": "⚠️ Неизвестный вариант",
        "en": "⚠️ Unknown option",
    },
    "ALREADY_PROCESSING": {
        "ru": "⏳ Уже обрабатываю ваш запрос",
        "en": "⏳ Your image is already being processed",
    },
    "BTN_ANOTHER": {
        "ru": "🎨 Другой цвет",
        "en": "🎨 Try another colour",
    },
    "BTN_CALL": {
        "ru": "📞 Связаться с нами",
        "en": "📞 Call us",
    },
}


def normalize_language(language: Optional[str], default: str = "ru") -> str:
    if language in LANGUAGES:
        return language
    return default if default in LANGUAGES else LANGUAGES[0]


def message(key: str, language: Optional[str], default: str = "ru", **fmt) -> str:
    texts = MESSAGES[key]
    text = texts.get(normalize_language(language, default)) or texts[LANGUAGES[0]]
    return text.format(**fmt) if fmt else text


def find_option(options: list[dict], key: str) -> Optional[dict]:
    for option in options:
        if option["key"] == key:
            return option
    return None


def display_name(option: dict, language: Optional[str], default: str = "ru") -> str:
    return option.get(normalize_language(language, default)) or option["key"]


def _rows(buttons: list[dict], per_row: int) -> list[list[dict]]:
    return [buttons[i : i + per_row] for i in range(0, len(buttons), per_row)]


def language_keyboard() -> dict:
    buttons = [{"text": LANGUAGE_NAMES[lang], "callback_data": f"lang_{lang}"} for lang in LANGUAGES]
    return {"inline_keyboard": [buttons]}


def color_keyboard(language: Optional[str], default: str = "ru") -> dict:
    buttons = [
        {"text": display_name(color, language, default), "callback_data": f"color_{color['key']}"}
        for color in COLORS
    ]
    return {"inline_keyboard": _rows(buttons, 2)}


def finish_keyboard(language: Optional[str], default: str = "ru") -> dict:
    buttons = [
        {"text": display_name(finish, language, default), "callback_data": f"finish_{finish['key']}"}
        for finish in FINISHES
    ]
    return {"inline_keyboard": [buttons]}


def result_keyboard(language: Optional[str], default: str = "ru", with_call: bool = True) -> dict:
    rows = [[{"text": message("BTN_ANOTHER", language, default), "callback_data": "result_another"}]]
    if with_call:
        rows.append([{"text": message("BTN_CALL", language, default), "callback_data": "result_call"}])
    return {"inline_keyboard": rows}
