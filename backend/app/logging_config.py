"""Structured JSON logging for the Batch Article Agent backend.

``configure_logging()`` runs once at import of ``app.main``.  From then on
every ``logging.getLogger(__name__)`` record, including those emitted by the
engine while a batch runs in the background, is written to stdout as one
JSON object per line.

``RequestIdMiddleware`` tags each request with an ``X-Request-ID`` and binds
it to a context variable, so records emitted while handling the request carry
``request_id``.  A batch task started from a request inherits that context,
which ties the whole run's log lines back to the POST that submitted it.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional, TextIO

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)
_access_logger = logging.getLogger("app.access")

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Loggers that are chatty at INFO without adding anything useful
_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "google_genai", "uvicorn.access")


def get_request_id() -> str:
    """Return the request ID bound to the current context, or ``""``."""
    return _request_id_var.get()


class _JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Fixed keys are ``timestamp``, ``level``, ``logger`` and ``message``;
    ``request_id`` is added while one is bound, ``exc_info`` when the record
    carries a traceback, and every ``extra=`` key is copied as is.
    """

    # Attributes every LogRecord has; anything else arrived through extra=
    _RESERVED = frozenset(
        logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self._extras(record))

        request_id = get_request_id()
        if request_id:
            payload.setdefault("request_id", request_id)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)

    def _extras(self, record: logging.LogRecord) -> dict:
        return {
            key: value
            for key, value in vars(record).items()
            if key not in self._RESERVED and not key.startswith("_")
        }


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Route every log record through a single JSON handler.

    Existing root handlers are removed.  Records go to ``stream`` (stdout by
    default).

    Args:
        level: Logging level name, e.g. ``"INFO"`` or ``"DEBUG"``.  Unknown
            names fall back to INFO.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(_JsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Structured JSON logging initialised", extra={"log_level": level.upper()})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request ID for the duration of each request and echo it back.

    An incoming ``X-Request-ID`` header is reused so upstream proxies can
    propagate their own trace ID; otherwise a fresh UUID4 hex is generated.
    Each request produces one ``app.access`` record, including requests
    whose handler raised.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self._header_name) or uuid.uuid4().hex
        token = _request_id_var.set(request_id)
        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            _log_access(request, 500, started, request_id)
            raise
        finally:
            _request_id_var.reset(token)

        response.headers[self._header_name] = request_id
        _log_access(request, response.status_code, started, request_id)
        return response


def _log_access(request: Request, status_code: int, started: float, request_id: str) -> None:
    _access_logger.info(
        "%s %s %s",
        request.method,
        request.url.path,
        status_code,
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round((time.monotonic() - started) * 1000, 1),
        },
    )
