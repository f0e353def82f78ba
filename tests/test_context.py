"""
Tests for building the resolver context.
"""

import pytest
from starlette.requests import HTTPConnection

from gqlkit.context import make_context_getter, resolve_custom_context
from gqlkit.core.users import create_login_token
from gqlkit.database import db
from gqlkit.logging import get_user_id, user_id_ctx


def connection(headers=None):
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return HTTPConnection({"type": "http", "headers": raw, "query_string": b""})


@pytest.mark.asyncio
class TestResolveCustomContext:
    async def test_none_function(self):
        assert await resolve_custom_context(None, connection()) == {}

    async def test_sync_and_async_functions(self):
        async def async_context(conn):
            return {"kind": "async"}

        assert await resolve_custom_context(lambda conn: {"kind": "sync"}, connection()) == {
            "kind": "sync"
        }
        assert await resolve_custom_context(async_context, connection()) == {"kind": "async"}

    async def test_none_result_is_empty(self):
        assert await resolve_custom_context(lambda conn: None, connection()) == {}

    async def test_non_mapping_result(self):
        with pytest.raises(TypeError, match="must return a mapping, got list"):
            await resolve_custom_context(lambda conn: ["x"], connection())


@pytest.mark.asyncio
class TestContextGetter:
    async def test_anonymous_context_has_db(self, database_url):
        context = await make_context_getter()(connection())

        assert context == {"db": db}

    async def test_user_context(self, database_url):
        user_id = await db.users.insert({"username": "ada", "email": "ada@example.com"})
        token = await create_login_token(user_id)
        reset = user_id_ctx.set(None)

        try:
            context = await make_context_getter()(connection({"X-Login-Token": token}))
            assert get_user_id() == user_id
        finally:
            user_id_ctx.reset(reset)

        assert context["user_id"] == user_id
        assert context["user"]["username"] == "ada"

    async def test_custom_keys_override_defaults(self, database_url):
        getter = make_context_getter(custom=lambda conn: {"db": "replaced", "extra": 1})

        assert await getter(connection()) == {"db": "replaced", "extra": 1}
