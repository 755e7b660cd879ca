"""Structured JSON logging with auth-attempt context."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

ATTEMPT_ID_CTX: ContextVar[str] = ContextVar("attempt_id", default="")

LOG_EXTRA_KEYS = ("flow", "state", "path", "status_code", "error_code")


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, tagged with the current attempt id."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        attempt_id = ATTEMPT_ID_CTX.get()
        if attempt_id:
            payload["attempt_id"] = attempt_id

        payload.update(
            {
                key: getattr(record, key)
                for key in LOG_EXTRA_KEYS
                if getattr(record, key, None) not in (None, "")
            }
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO") -> None:
    """Send JSON lines to stderr; stdout is reserved for command output."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.addHandler(handler)


def set_attempt_id(attempt_id: str) -> None:
    ATTEMPT_ID_CTX.set(attempt_id)


@contextmanager
def attempt_scope(attempt_id: str = "") -> Iterator[str]:
    """Bind an attempt id for the enclosed block and restore the previous one on exit.

    Ids set with set_attempt_id inside the block are discarded on exit too.
    """
    token = ATTEMPT_ID_CTX.set(attempt_id)
    try:
        yield attempt_id
    finally:
        ATTEMPT_ID_CTX.reset(token)
