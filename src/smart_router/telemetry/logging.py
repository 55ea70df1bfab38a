"""Structured logging for the router service.

JSON lines in production, a colored console renderer in dev. Every line
emitted while a request is being handled carries its ``request_id``; lines
emitted inside routing also carry the caller's ``user_id`` and, during a
dispatch, the ``model_id`` being called.

Log format (production):
    {
        "timestamp": "2026-10-19T10:30:45.123456Z",
        "level": "info",
        "event": "model_router.decision_made",
        "logger": "smart_router.routing.router",
        "request_id": "req_789...",
        "user_id": "default",
        "model_id": "qwen/qwen3-coder:free",
        "confidence": 0.9
    }
"""

from __future__ import annotations

import logging
import re
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor

REQUEST_ID_HEADER = b"x-request-id"

# Libraries that log every outbound call at INFO
_CHATTY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore")

# Inbound ids are echoed back and logged, so only short opaque tokens are kept
_INBOUND_ID = re.compile(r"^[A-Za-z0-9_.\-]{1,64}$")


def configure_logging(
    *,
    json_logs: bool = False,
    log_level: str = "INFO",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        json_logs: Use JSON format (True for production, False for dev)
        log_level: Minimum log level for this service's own loggers
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # Model-call chatter stays at WARNING unless we are debugging
    chatty_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if json_logs:
        renderer: list[Processor] = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.RichTracebackFormatter(),
            ),
        ]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ------------------------------------------------------------------ #
# Request ID Middleware
# ------------------------------------------------------------------ #


def _request_id_from(scope: dict[str, Any]) -> str:
    for name, value in scope.get("headers", []):
        if name == REQUEST_ID_HEADER:
            candidate = value.decode("latin-1")
            if _INBOUND_ID.match(candidate):
                return candidate
            break
    return f"req_{uuid.uuid4().hex[:16]}"


class RequestIdMiddleware:
    """Pure ASGI middleware that correlates log lines per request.

    Reuses a well-formed inbound ``x-request-id`` (so a proxy's id survives)
    or mints one, binds it with the method and path for the lifetime of the
    request, and echoes it on the response.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _request_id_from(scope)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=scope.get("method"),
            path=scope.get("path"),
        )

        async def send_with_request_id(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                headers = [h for h in message.get("headers", []) if h[0] != REQUEST_ID_HEADER]
                headers.append((REQUEST_ID_HEADER, request_id.encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_request_id)


# ------------------------------------------------------------------ #
# Routing context
# ------------------------------------------------------------------ #


@contextmanager
def routing_context(**values: str) -> Iterator[None]:
    """Bind routing fields (``user_id``, ``model_id``) for a block.

    Fields are restored on exit, so a fallback dispatch never inherits the
    primary model's id.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield
