"""
structlog setup for gqlkit.

Every event carries the id of the HTTP request or WebSocket connection it
belongs to, plus the authenticated user once the resolver context has
resolved a login token. ``LoggingContextMiddleware`` and the context getter
fill these in through the context variables below.
"""

import base64
import logging
import secrets
import sys
import time
from contextvars import ContextVar
from typing import Any

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("gqlkit_request_id", default=None)
user_id_ctx: ContextVar[str | None] = ContextVar("gqlkit_user_id", default=None)


def add_request_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor copying the request and user ids onto each event."""
    for key, var in (("request_id", request_id_ctx), ("user_id", user_id_ctx)):
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


def _resolve_level(debug: bool, log_level: str | None) -> int:
    if not log_level:
        return logging.DEBUG if debug else logging.INFO
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(debug: bool = False, log_level: str | None = None) -> None:
    """Route structlog through stdlib logging on stdout.

    Args:
        debug: Render events for a terminal instead of as JSON lines
        log_level: Level name such as "WARNING"; DEBUG in debug mode, INFO otherwise
    """
    logging.basicConfig(
        level=_resolve_level(debug, log_level),
        stream=sys.stdout,
        format="%(message)s",
        force=True,
    )

    renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if debug
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_request_context,
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """14 url-safe characters: 48 bits of epoch milliseconds, then 32 random bits."""
    millis = int(time.time() * 1000).to_bytes(6, "big")
    return base64.urlsafe_b64encode(millis + secrets.token_bytes(4)).decode("ascii").rstrip("=")


def set_request_context(request_id: str | None = None, user_id: str | None = None) -> None:
    """Bind ids for the current request; a request id is generated when missing."""
    request_id_ctx.set(request_id or generate_request_id())
    if user_id is not None:
        user_id_ctx.set(user_id)


def clear_request_context() -> None:
    request_id_ctx.set(None)
    user_id_ctx.set(None)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def get_user_id() -> str | None:
    return user_id_ctx.get()
