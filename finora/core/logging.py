"""
Logging setup.

One stdout handler on the root logger, formatted as JSON lines (production) or
plain text (development). Fields passed with ``extra=`` are carried into the
output, the current request id is attached when a request is in flight, and
credentials (provider api keys in query strings, bearer tokens, secrets) are
redacted before anything is written.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from .config import Settings, get_settings


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes every LogRecord has; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

_SECRET_RE = re.compile(
    r"(?P<key>apikey|api_key|llm_api_key|auth_secret|secret|token|access_token|authorization)"
    r"(?P<sep>\s*[=:]\s*|\"\s*:\s*\"|'\s*:\s*')"
    r"(?:bearer\s+)?(?P<value>[^\s,&\"'}\]]+)",
    re.IGNORECASE,
)


def redact(text: str) -> str:
    """Replace credential values in ``text`` with ``[REDACTED]``."""
    return _SECRET_RE.sub(lambda m: f"{m.group('key')}{m.group('sep')}[REDACTED]", text)


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_")}


class StructuredFormatter(logging.Formatter):
    """JSON lines formatter."""

    def __init__(self, include_location: bool = False):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id

        entry.update(_extra_fields(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_location:
            entry["location"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line text formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        request_id = request_id_var.get()
        rid = f" [{request_id[:8]}]" if request_id else ""
        line = f"{timestamp} {record.levelname:<7}{rid} {record.name}: {record.getMessage()}"

        extras = _extra_fields(record)
        if extras:
            line += " | " + " ".join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class SensitiveDataFilter(logging.Filter):
    """Redact credentials in the message and in string ``extra=`` fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None

        for key, value in _extra_fields(record).items():
            if isinstance(value, str):
                setattr(record, key, redact(value))
        return True


def setup_logging(settings: Settings | None = None) -> None:
    """Install the stdout handler on the root logger. Safe to call twice."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if settings.log_format == "json":
        handler.setFormatter(StructuredFormatter(include_location=settings.debug))
    else:
        handler.setFormatter(TextFormatter())
    handler.addFilter(SensitiveDataFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs full request URLs, which carry the Alpha Vantage key
    for noisy in ("httpx", "httpcore", "openai", "pdfminer", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``finora`` namespace."""
    return logging.getLogger(f"finora.{name}")
