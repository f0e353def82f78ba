"""Resolve the user behind a login token for request contexts."""

from __future__ import annotations

import base64
import hashlib
import secrets
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from starlette.requests import HTTPConnection

from ..config import Settings, settings
from ..database import db, get_async_session
from ..database.models import LoginTokens, Users
from ..logging import get_logger

logger = get_logger(__name__)

db.register("users", Users)


def hash_login_token(token: str) -> str:
    """Hash a login token the way it is stored (base64 encoded SHA-256)."""
    digest = hashlib.sha256(token.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def generate_login_token() -> str:
    return secrets.token_urlsafe(32)


async def create_login_token(user_id: str) -> str:
    """
    Issue a login token for a user.

    Only the hash is stored; the plain token is returned to hand to the client.
    """
    token = generate_login_token()
    async with get_async_session() as session:
        session.add(LoginTokens(user_id=user_id, hashed_token=hash_login_token(token)))

    logger.info("Login token issued", user_id=user_id)
    return token


def is_token_expired(
    when: datetime, expiration_days: int | None = None, now: datetime | None = None
) -> bool:
    """Check a token's issue time against ``login_expiration_days``."""
    if when.tzinfo is None:
        # SQLite drops the offset; stored values are UTC
        when = when.replace(tzinfo=timezone.utc)
    if expiration_days is None:
        expiration_days = settings.login_expiration_days
    now = now or datetime.now(timezone.utc)
    return when + timedelta(days=expiration_days) < now


def _user_columns(user_fields: Iterable[str] | None) -> list[str]:
    fields = list(user_fields if user_fields is not None else settings.context_user_fields)
    unknown = [f for f in fields if f not in Users.__table__.c]
    if unknown:
        raise ValueError(f"Unknown user fields: {', '.join(unknown)}")
    if "id" not in fields:
        fields.insert(0, "id")
    return fields


async def get_user_for_context(
    login_token: str | None,
    user_fields: Iterable[str] | None = None,
    expiration_days: int | None = None,
) -> dict[str, Any]:
    """
    Look up the user owning a login token.

    Args:
        login_token: Plain login token sent by the client
        user_fields: User columns to expose (defaults to settings.context_user_fields)
        expiration_days: Token lifetime (defaults to settings.login_expiration_days)

    Returns:
        ``{"user": {...}, "user_id": id}`` for a valid token, otherwise an empty dict
    """
    if not login_token:
        return {}

    fields = _user_columns(user_fields)
    stmt = (
        select(LoginTokens.when, Users)
        .join(Users, LoginTokens.user_id == Users.id)
        .where(LoginTokens.hashed_token == hash_login_token(login_token))
    )

    async with get_async_session() as session:
        row = (await session.execute(stmt)).first()

    if row is None:
        logger.debug("Login token not recognised")
        return {}

    when, user = row
    if is_token_expired(when, expiration_days):
        logger.info("Login token expired", user_id=user.id)
        return {}

    return {
        "user": {field: getattr(user, field) for field in fields},
        "user_id": user.id,
    }


def extract_login_token(connection: HTTPConnection, options: Settings | None = None) -> str | None:
    """
    Find the login token on an HTTP request or WebSocket handshake.

    Checked in order: the configured token header, ``Authorization: Bearer``,
    the configured cookie, and for WebSockets the configured query parameter.
    """
    opts = options or settings

    token = connection.headers.get(opts.login_token_header)
    if token:
        return token

    authorization = connection.headers.get("authorization", "")
    if authorization[:7].lower() == "bearer ":
        token = authorization[7:].strip()
        if token:
            return token

    token = connection.cookies.get(opts.login_token_cookie)
    if token:
        return token

    if connection.scope.get("type") == "websocket":
        token = connection.query_params.get(opts.login_token_param)
        if token:
            return token

    return None
