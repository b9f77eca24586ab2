"""Logging utilities for Chat Bridge."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

_DEFAULT_LEVEL = os.environ.get("CHB_LOG_LEVEL", "INFO")
_USE_JSON = os.environ.get("CHB_LOG_FORMAT", "json").lower() != "text"

CONTEXT_PREFIX = "ctx_"
# httpx logs every request line at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with conversation context lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key.startswith(CONTEXT_PREFIX):
                payload[key[len(CONTEXT_PREFIX) :]] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = _USE_JSON) -> None:
    """Configure root logger with optional JSON formatting."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "chat_bridge") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def log_context(conversation_id: str | None = None, message_id: str | None = None) -> dict[str, Any]:
    """Build ``extra`` kwargs that the JSON formatter emits as ``conversation_id`` / ``message_id``."""
    extra: dict[str, Any] = {}
    if conversation_id is not None:
        extra[f"{CONTEXT_PREFIX}conversation_id"] = conversation_id
    if message_id is not None:
        extra[f"{CONTEXT_PREFIX}message_id"] = message_id
    return extra


__all__ = ["JsonFormatter", "configure_logging", "get_logger", "log_context"]
