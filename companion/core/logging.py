"""
Logging configuration

Standard library logging plus a structured one-line event format used by the
live session pipeline.
"""

import logging
import sys
import uuid
from typing import Any, Mapping, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from companion.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
PAYLOAD_PREVIEW_CHARS = 200

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "websockets")

_configured = False


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once per process"""
    global _configured
    log_level = _LEVELS.get((level or settings.log_level).upper(), logging.INFO)

    root = logging.getLogger()
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_event_logger(name: str) -> logging.Logger:
    """Logger for structured pipeline events (see emit_log)"""
    return logging.getLogger(name)


def _format_value(value: Any) -> str:
    text = str(value)
    if " " in text or not text:
        return f'"{text}"'
    return text


def emit_log(
    logger: logging.Logger,
    *,
    level: str,
    domain: str,
    event: str,
    summary: str,
    kv: Optional[Mapping[str, Any]] = None,
    payload: Optional[str] = None,
) -> None:
    """
    Emit one structured log line.

    Format: ``[domain] event | summary | k=v k=v | payload=...``
    Fields with a None value are skipped and the payload is truncated.
    """
    log_level = _LEVELS.get(level.upper(), logging.INFO)
    if not logger.isEnabledFor(log_level):
        return

    parts = [f"[{domain}] {event}", summary]
    fields = " ".join(
        f"{key}={_format_value(value)}"
        for key, value in (kv or {}).items()
        if value is not None
    )
    if fields:
        parts.append(fields)
    if payload:
        preview = payload if len(payload) <= PAYLOAD_PREVIEW_CHARS else payload[:PAYLOAD_PREVIEW_CHARS] + "..."
        parts.append(f"payload={preview!r}")

    logger.log(log_level, " | ".join(parts))


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach an X-Request-ID header to every HTTP response"""

    header_name = "X-Request-ID"

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response
