"""
GraphQL resolver context
"""

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from starlette.requests import HTTPConnection

from .config import Settings, settings
from .core.users import extract_login_token, get_user_for_context
from .database import db
from .logging import get_logger, user_id_ctx

logger = get_logger(__name__)

ContextResult = Mapping[str, Any] | None
ContextFunction = Callable[[HTTPConnection], ContextResult | Awaitable[ContextResult]]


async def resolve_custom_context(
    custom: ContextFunction | None, connection: HTTPConnection
) -> dict[str, Any]:
    """Call an application context function; it may be sync or async.

    Raises:
        TypeError: If the function returns something other than a mapping
    """
    if custom is None:
        return {}

    result = custom(connection)
    if inspect.isawaitable(result):
        result = await result
    if result is None:
        return {}
    if not isinstance(result, Mapping):
        raise TypeError(f"Context function must return a mapping, got {type(result).__name__}")
    return dict(result)


def make_context_getter(options: Settings | None = None, custom: ContextFunction | None = None):
    """Create the context dependency shared by HTTP and WebSocket GraphQL routes.

    The context always carries ``db``; ``user`` and ``user_id`` are added
    when the connection presents a valid login token. Keys returned by
    ``custom`` override the defaults.
    """
    opts = options or settings

    async def get_context(connection: HTTPConnection) -> dict[str, Any]:
        login_token = extract_login_token(connection, opts)
        user_context = await get_user_for_context(
            login_token,
            user_fields=opts.context_user_fields,
            expiration_days=opts.login_expiration_days,
        )
        if user_context:
            user_id_ctx.set(str(user_context["user_id"]))

        custom_context = await resolve_custom_context(custom, connection)
        if custom_context:
            logger.debug("Custom context applied", keys=sorted(custom_context))

        return {"db": db, **user_context, **custom_context}

    return get_context
