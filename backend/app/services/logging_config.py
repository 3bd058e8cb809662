"""
Structured logging for the S2P quote engine.

Every record emitted while an HTTP request is in flight carries that request's
id (set by RequestTimingMiddleware through ``request_id_var``), so pricing,
store and conversation log lines can be joined to the access log line.
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# ``extra=`` keys promoted to top-level JSON fields
CONTEXT_FIELDS = (
    "request_id",
    "scoping_record_id",
    "quote_version",
    "duration_ms",
    "http_method",
    "http_path",
    "http_status",
)

_NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "LiteLLM", "aiosqlite", "sqlalchemy.engine")


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; context fields only when set."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(
        JSONFormatter() if json_output
        else logging.Formatter("%(asctime)s %(levelname)-7s [%(name)s] (req=%(request_id)s) %(message)s")
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers = [handler]

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
