from __future__ import annotations

import contextvars
import json
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from receipt_lens.core.config import settings

SERVICE_NAME = "receipt-lens"

_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_document_key_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "document_key", default=None
)

_configured = False


def _utc_iso(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; structured fields sit next to the fixed keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": _utc_iso(record.created),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        fields = getattr(record, "fields", None) or {}
        payload.update({k: v for k, v in fields.items() if v is not None})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelName((settings.log_level or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger("receipt_lens")
    root.setLevel(level)
    root.handlers = [handler]
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


@contextmanager
def request_context(request_id: str | None) -> Iterator[None]:
    """Bind a request id for one invocation; the document key starts out empty."""
    token_request = _request_id_var.set(request_id)
    token_document = _document_key_var.set(None)
    try:
        yield
    finally:
        _document_key_var.reset(token_document)
        _request_id_var.reset(token_request)


@contextmanager
def document_context(document_key: str | None) -> Iterator[None]:
    token = _document_key_var.set(document_key)
    try:
        yield
    finally:
        _document_key_var.reset(token)


def get_request_id() -> str | None:
    return _request_id_var.get()


def _event_extra(event: str, fields: dict[str, Any]) -> dict[str, Any]:
    merged = {
        "request_id": _request_id_var.get(),
        "document_key": _document_key_var.get(),
        **fields,
    }
    return {"event": event, "fields": {k: v for k, v in merged.items() if v is not None}}


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra=_event_extra(event, fields))


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra=_event_extra(event, fields))


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Gives every HTTP request a request id (from ``x-request-id`` or a fresh uuid)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        with request_context(request_id):
            try:
                response = await call_next(request)
            except Exception:
                log_exception(
                    get_logger(__name__),
                    "http.request.error",
                    method=request.method,
                    path=request.url.path,
                )
                raise
        response.headers["x-request-id"] = request_id
        return response


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
