"""Structured stdout logging for the bot.

Every record is one JSON object; per-event details (chat identity, bucket,
processor status) travel in ``extra={"context": {...}}``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # default=str: contexts carry enums and datetimes
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Replace root handlers with a single JSON handler on stdout."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for existing in root.handlers[:]:
        root.removeHandler(existing)

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(JSONFormatter())
    root.addHandler(stream)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"wrapbot.{name}")


class IdentityLoggerAdapter(logging.LoggerAdapter):
    """Bound to one chat; a ``context=`` kwarg is merged over the bound fields."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        call_context = kwargs.pop("context", None) or {}
        merged = {**self.extra, **call_context}
        if merged:
            kwargs["extra"] = {"context": merged}
        return msg, kwargs


def identity_logger(logger: logging.Logger, identity: str) -> IdentityLoggerAdapter:
    return IdentityLoggerAdapter(logger, {"identity": identity})
