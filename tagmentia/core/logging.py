"""
Structured logging for the limits service.

- "tagmentia" logger: JSON lines in production, one-line key=value output elsewhere.
- request_id and user_id are carried in context variables and stamped on
  every record by ContextFilter, so service code only passes its own fields
  through extra=.
- log_event: shorthand for an event-style record with truncated field values.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_ctx_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

_CONTEXT_FIELDS = ("request_id", "user_id")
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}
_MAX_FIELD_CHARS = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def bind_user_id(user_id: Optional[str]) -> None:
    """Attach the authenticated user to every record logged for this request."""
    user_id_ctx_var.set(user_id)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for bound, label in ((10, "<10ms"), (100, "10-100ms"), (500, "100-500ms"), (1000, "500-1000ms")):
        if latency_ms < bound:
            return label
    return ">=1000ms"


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields a caller attached through extra= (context fields excluded)."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and key not in _CONTEXT_FIELDS
    }


class ContextFilter(logging.Filter):
    """Fill request_id/user_id from context unless the caller passed them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_ctx_var.get()
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_ctx_var.get()
        return True


def _utc_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": _utc_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            entry[key] = getattr(record, key, None)
        entry.update(record_fields(record))
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [_utc_timestamp(record), record.levelname, record.name]
        rid = getattr(record, "request_id", None)
        if rid:
            parts.append(f"rid={rid}")
        parts.append(record.getMessage())
        uid = getattr(record, "user_id", None)
        fields = record_fields(record)
        if uid:
            fields = {"user_id": uid, **fields}
        parts.extend(f"{key}={value}" for key, value in fields.items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development") -> None:
    """Install a single stdout handler on the "tagmentia" logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(ContextFilter())

    logger = logging.getLogger("tagmentia")
    logger.setLevel(logging.INFO)
    logger.handlers = [handler]
    logger.propagate = True


def _truncate(value: Any) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    if len(text) <= _MAX_FIELD_CHARS:
        return text
    return text[:_MAX_FIELD_CHARS] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    user_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Log an event record; extra values are stringified and truncated."""
    logger = logging.getLogger("tagmentia")
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, Any] = {"user_id": user_id}
    if event_type:
        fields["event_type"] = event_type
    if error_code:
        fields["error_code"] = error_code
    for key, value in (extra or {}).items():
        fields[key] = _truncate(value)

    getattr(logger, level, logger.info)(msg, extra=fields)
