"""
Tests for the document-style db handle.
"""

import pytest
from sqlalchemy import func, select

from gqlkit.database import Database, InvalidQueryError, db, get_session
from gqlkit.database.models import Users


class TestDatabaseRegistry:
    def test_attribute_and_item_access(self):
        handle = Database()
        collection = handle.register("accounts", Users)

        assert handle.accounts is collection
        assert handle["accounts"] is collection
        assert "accounts" in handle
        assert handle.list_names() == ["accounts"]

    def test_unknown_collection(self):
        handle = Database()

        with pytest.raises(AttributeError, match="Unknown collection: missing"):
            handle.missing
        with pytest.raises(KeyError, match="Unknown collection: missing"):
            handle["missing"]

    def test_reregistering_same_model_is_noop(self):
        handle = Database()
        first = handle.register("accounts", Users)

        assert handle.register("accounts", Users) is first

    def test_name_taken_by_other_model(self, posts):
        handle = Database()
        handle.register("accounts", Users)

        with pytest.raises(ValueError, match="already registered"):
            handle.register("accounts", posts.model)

    def test_unregister(self):
        handle = Database()
        handle.register("accounts", Users)

        assert handle.unregister("accounts") is True
        assert handle.unregister("accounts") is False
        assert len(handle) == 0

    def test_shared_handle_has_users(self):
        assert db.users.table.name == "users"


@pytest.mark.asyncio
class TestCollection:
    async def test_insert_and_find_one(self, posts):
        post_id = await posts.insert({"title": "First", "views": 3})

        doc = await posts.find_one({"id": post_id})

        assert isinstance(post_id, str)
        assert len(post_id) == 17
        assert doc["title"] == "First"
        assert doc["views"] == 3
        assert doc["author_id"] is None

    async def test_find_with_operators_sort_and_paging(self, posts):
        for title, views in [("a", 1), ("b", 5), ("c", 10), ("d", 20)]:
            await posts.insert({"title": title, "views": views})

        rows = await posts.find({"views": {"$gte": 5, "$lt": 20}}, sort={"views": -1})
        assert [r["title"] for r in rows] == ["c", "b"]

        rows = await posts.find(sort={"title": 1}, limit=2, offset=1)
        assert [r["title"] for r in rows] == ["b", "c"]

        rows = await posts.find({"title": {"$in": ["a", "d"]}}, sort={"title": "asc"})
        assert [r["title"] for r in rows] == ["a", "d"]

        rows = await posts.find({"title": {"$nin": ["a", "d"]}, "views": {"$ne": 5}})
        assert [r["title"] for r in rows] == ["c"]

    async def test_find_selected_fields_include_primary_key(self, posts):
        await posts.insert({"title": "Only"})

        rows = await posts.find(fields=["title"])

        assert set(rows[0]) == {"id", "title"}

    async def test_count(self, posts):
        await posts.insert({"title": "x", "views": 1})
        await posts.insert({"title": "y", "views": 2})

        assert await posts.count() == 2
        assert await posts.count({"views": {"$gt": 1}}) == 1

    async def test_update_with_set_unset_and_plain_modifier(self, posts):
        post_id = await posts.insert({"title": "Draft", "author_id": "someone"})

        modifier = {"$set": {"title": "Final"}, "$unset": ["author_id"]}
        assert await posts.update({"id": post_id}, modifier) == 1
        doc = await posts.find_one({"id": post_id})
        assert doc["title"] == "Final"
        assert doc["author_id"] is None

        assert await posts.update({"id": post_id}, {"views": 9}) == 1
        assert (await posts.find_one({"id": post_id}))["views"] == 9

    async def test_update_counts_matches(self, posts):
        await posts.insert({"title": "x", "views": 1})
        await posts.insert({"title": "y", "views": 1})

        assert await posts.update({"views": 1}, {"views": 2}) == 2
        assert await posts.update({"views": 100}, {"views": 3}) == 0

    async def test_remove(self, posts):
        keep = await posts.insert({"title": "keep"})
        await posts.insert({"title": "drop"})

        assert await posts.remove({"title": "drop"}) == 1
        assert [r["id"] for r in await posts.find()] == [keep]

    @pytest.mark.parametrize(
        "call",
        [
            lambda c: c.find({"nope": 1}),
            lambda c: c.find({"views": {"$regex": "x"}}),
            lambda c: c.find({"views": {"$in": 3}}),
            lambda c: c.find(sort={"views": 0}),
            lambda c: c.find(limit=-1),
            lambda c: c.find(fields=["nope"]),
            lambda c: c.insert({"nope": 1}),
            lambda c: c.update({}, {}),
            lambda c: c.update({}, {"$push": {"views": 1}}),
            lambda c: c.update({}, {"$set": {}}),
        ],
    )
    async def test_invalid_queries(self, posts, call):
        with pytest.raises(InvalidQueryError):
            await call(posts)


class TestSessions:
    def test_sync_session_sees_collection_writes(self, posts):
        with get_session() as session:
            session.add(posts.model(title="sync"))

        with get_session() as session:
            titles = session.execute(select(posts.model.title)).scalars().all()

        assert titles == ["sync"]

    @pytest.mark.asyncio
    async def test_handle_session(self, posts):
        await posts.insert({"title": "async"})

        async with db.session() as session:
            count = (await session.execute(select(func.count()).select_from(posts.table))).scalar()

        assert count == 1
