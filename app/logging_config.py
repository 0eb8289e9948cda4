"""JSON logging for the concierge API.

Every record is one JSON object per line. Conversation fields bound through
``bind_conversation`` (or passed in ``context``) become top-level keys; the rest of
the context stays under ``context``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOGGER_NAMESPACE = "concierge"

# Context keys promoted to top-level JSON fields.
CONVERSATION_FIELDS = ("conversation_id", "model")

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "chromadb")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        for key in CONVERSATION_FIELDS:
            if context.get(key) is not None:
                payload[key] = context.pop(key)
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Send JSON records to stdout at ``level`` and quiet chatty client libraries."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Merges bound fields with the per-call ``context=`` keyword into ``record.context``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = kwargs.pop("context", None)
        if context or self.extra:
            kwargs["extra"] = {**kwargs.get("extra", {}), "context": {**self.extra, **(context or {})}}
        return msg, kwargs


def bind_conversation(logger: logging.Logger, conversation_id: str, model: Optional[str] = None) -> LoggerAdapter:
    fields: Dict[str, Any] = {"conversation_id": conversation_id}
    if model:
        fields["model"] = model
    return LoggerAdapter(logger, fields)
