"""Structured logging for the structure exchange service.

Every log line is one JSON object. Two filters run on the handler before
formatting:
- ``RequestIdFilter`` stamps the current request id (from a contextvar)
- ``SensitiveDataFilter`` masks secrets carried in ``extra=`` fields

Masking depends on what the field holds. Session tickets become a short
SHA-256 fingerprint, so one player's requests can still be correlated.
Keys and tokens become a fixed marker. Structure payloads are player
content and only their size is kept.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping

from app.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

TICKET_FIELDS = frozenset({"ticket", "session_ticket", "x-steam-auth-ticket"})
SECRET_FIELDS = frozenset(
    {
        "key",
        "web_api_key",
        "steam_web_api_key",
        "authorization",
        "token",
        "secret",
        "password",
        "cookie",
        "set-cookie",
    }
)
CONTENT_FIELDS = frozenset({"payload"})

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRS = frozenset(vars(LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def hash_for_log(secret: bytes | str) -> str:
    """Short, stable fingerprint of a secret that is safe to log."""

    raw = secret.encode() if isinstance(secret, str) else secret
    return hashlib.sha256(raw).hexdigest()[:16]


def mask_field(name: str, value: Any) -> Any:
    """Return ``value`` as it may appear in a log line under ``name``.

    Examples:
        >>> mask_field("web_api_key", "ABC")
        '[REDACTED]'
        >>> mask_field("payload", b"1234")
        '[REDACTED] 4 bytes'
        >>> mask_field("scene", "forest")
        'forest'
    """

    lowered = str(name).lower()
    if isinstance(value, str) and value.startswith(REDACTED):
        return value
    if lowered in TICKET_FIELDS:
        if isinstance(value, (bytes, str)) and value:
            return f"{REDACTED} sha256:{hash_for_log(value)}"
        return REDACTED
    if lowered in SECRET_FIELDS:
        return REDACTED
    if lowered in CONTENT_FIELDS:
        if isinstance(value, (bytes, str)):
            return f"{REDACTED} {len(value)} bytes"
        return REDACTED
    return _mask_nested(value)


def _mask_nested(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: mask_field(k, v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_mask_nested(v) for v in value)
    return value


def extra_fields(record: LogRecord) -> dict[str, Any]:
    """Fields passed through ``extra=``, masked."""

    return {
        name: mask_field(name, value)
        for name, value in vars(record).items()
        if name not in _RECORD_ATTRS and not name.startswith("_")
    }


class RequestIdFilter(logging.Filter):
    """Stamp the current request id on records that lack one."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class SensitiveDataFilter(logging.Filter):
    """Mask sensitive ``extra=`` fields in place, before any formatter runs."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for name, value in extra_fields(record).items():
            setattr(record, name, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, event, then extras."""

    def format(self, record: LogRecord) -> str:  # noqa: D401
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        # Masking again is idempotent and covers handlers without the filter.
        entry.update({k: v for k, v in extra_fields(record).items() if v is not None})
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    path = Path(log_settings.file_path or "logs/structure-exchange.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes > 0:
        return RotatingFileHandler(
            path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the JSON (or plain) handler on the root logger.

    Args:
        log_settings: Log settings; the process settings when omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn keeps its own handlers; do not duplicate its lines through root
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).propagate = False
    # httpx logs each request URL at INFO, and Steam's URL carries the ticket
    logging.getLogger("httpx").setLevel(logging.WARNING)
