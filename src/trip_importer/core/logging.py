from __future__ import annotations

import contextvars
import json
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import UTC, datetime
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from trip_importer.core.config import settings

# Context fields stamped on every event emitted while they are bound.
_context: dict[str, contextvars.ContextVar[str | None]] = {
    "request_id": contextvars.ContextVar("request_id", default=None),
    "import_item_id": contextvars.ContextVar("import_item_id", default=None),
}

_configured = False


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")
        payload: dict[str, Any] = {
            "ts": ts.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None) or record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger("trip_importer")
    logger.setLevel(settings.log_level.upper())
    logger.handlers = [handler]
    logger.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


@contextmanager
def log_context(**values: str | None) -> Iterator[None]:
    """Bind `request_id` and/or `import_item_id` for the events logged inside."""
    tokens = [(_context[key], _context[key].set(value)) for key, value in values.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def item_context(item_id: str) -> AbstractContextManager[None]:
    return log_context(import_item_id=item_id)


def _merge_fields(fields: dict[str, Any]) -> dict[str, Any]:
    payload = {key: var.get() for key, var in _context.items() if var.get()}
    payload.update({key: value for key, value in fields.items() if value is not None})
    return payload


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _merge_fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _merge_fields(fields)})


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        logger = get_logger(__name__)
        start = time.monotonic()
        with log_context(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                log_exception(
                    logger, "http.request.error", method=request.method, path=request.url.path
                )
                raise
            response.headers["x-request-id"] = request_id
            log_event(
                logger,
                "http.request.finish",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=monotonic_ms(start),
            )
            return response
