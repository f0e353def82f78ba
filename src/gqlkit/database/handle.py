"""
Document-style access to registered tables.

``db`` is the shared handle: models are registered under a collection name
and then reached as ``db.users`` or ``db["users"]``. Collections read and
write plain dicts so resolvers can pass GraphQL JSON arguments straight
through.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.sql.elements import ColumnElement

from ..logging import get_logger
from .connection import get_async_session

logger = get_logger(__name__)


class InvalidQueryError(ValueError):
    """Raised when filters, options or modifiers reference unknown fields or operators."""

    pass


OPERATORS: dict[str, Callable[[Any, Any], ColumnElement[bool]]] = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
    "$in": lambda column, value: column.in_(value),
    "$nin": lambda column, value: column.not_in(value),
}

MODIFIERS = {"$set", "$unset"}


def _is_operator_dict(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(isinstance(key, str) and key.startswith("$") for key in condition)
    )


class Collection:
    """A table addressed with Mongo-style filters, options and modifiers."""

    def __init__(self, name: str, model: type):
        self.name = name
        self.model = model
        self.table = model.__table__
        self.primary_key = next(iter(self.table.primary_key.columns))

    def __repr__(self) -> str:
        return f"<Collection {self.name} ({self.table.name})>"

    def _column(self, field: str):
        try:
            return self.table.c[field]
        except KeyError:
            raise InvalidQueryError(
                f"Unknown field '{field}' on collection '{self.name}'"
            ) from None

    def _where(self, filters: Mapping[str, Any] | None) -> list[ColumnElement[bool]]:
        if filters is None:
            return []
        if not isinstance(filters, Mapping):
            raise InvalidQueryError("Filters must be a mapping")

        clauses: list[ColumnElement[bool]] = []
        for field, condition in filters.items():
            column = self._column(field)
            if not _is_operator_dict(condition):
                clauses.append(column == condition)
                continue

            for op, value in condition.items():
                build = OPERATORS.get(op)
                if build is None:
                    raise InvalidQueryError(f"Unsupported operator '{op}' on field '{field}'")
                if op in ("$in", "$nin") and not isinstance(value, list | tuple | set):
                    raise InvalidQueryError(f"Operator '{op}' expects a list on field '{field}'")
                clauses.append(build(column, value))
        return clauses

    def _values(self, document: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(document, Mapping):
            raise InvalidQueryError("Document must be a mapping")
        return {self._column(field).name: value for field, value in document.items()}

    def _modifier_values(self, modifier: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(modifier, Mapping) or not modifier:
            raise InvalidQueryError("Modifier must be a non-empty mapping")

        if not any(str(key).startswith("$") for key in modifier):
            return self._values(modifier)

        unknown = set(modifier) - MODIFIERS
        if unknown:
            raise InvalidQueryError(f"Unsupported modifier(s): {', '.join(sorted(unknown))}")

        values = dict(modifier.get("$set") or {})
        unset: Iterable[str] = modifier.get("$unset") or []
        for field in unset:
            values[field] = None
        if not values:
            raise InvalidQueryError("Modifier does not change any field")
        return self._values(values)

    def _columns(self, fields: Iterable[str] | None) -> list[Any]:
        if not fields:
            return list(self.table.columns)
        columns = [self.primary_key]
        for field in fields:
            column = self._column(field)
            if column is not self.primary_key:
                columns.append(column)
        return columns

    async def find(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        fields: Iterable[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
        sort: Mapping[str, int | str] | None = None,
    ) -> list[dict[str, Any]]:
        """Return matching rows as dicts.

        Args:
            filters: Field equality or operator conditions
            fields: Fields to return; the primary key is always included
            limit: Maximum number of rows
            offset: Rows to skip
            sort: Field to direction (1/"asc" or -1/"desc"), applied in order
        """
        stmt = select(*self._columns(fields)).where(*self._where(filters))

        for field, direction in (sort or {}).items():
            column = self._column(field)
            if direction in (1, "asc", "ASC"):
                stmt = stmt.order_by(column.asc())
            elif direction in (-1, "desc", "DESC"):
                stmt = stmt.order_by(column.desc())
            else:
                raise InvalidQueryError(f"Invalid sort direction for '{field}': {direction!r}")

        if limit is not None:
            if limit < 0:
                raise InvalidQueryError("Limit must not be negative")
            stmt = stmt.limit(limit)
        if offset:
            if offset < 0:
                raise InvalidQueryError("Offset must not be negative")
            stmt = stmt.offset(offset)

        async with get_async_session() as session:
            result = await session.execute(stmt)
            return [dict(row._mapping) for row in result]

    async def find_one(
        self, filters: Mapping[str, Any] | None = None, *, fields: Iterable[str] | None = None
    ) -> dict[str, Any] | None:
        rows = await self.find(filters, fields=fields, limit=1)
        return rows[0] if rows else None

    async def count(self, filters: Mapping[str, Any] | None = None) -> int:
        stmt = select(func.count()).select_from(self.table).where(*self._where(filters))
        async with get_async_session() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def insert(self, document: Mapping[str, Any]) -> str:
        """Insert a document and return its primary key as a string."""
        stmt = insert(self.table).values(**self._values(document))
        async with get_async_session() as session:
            result = await session.execute(stmt)
            new_id = result.inserted_primary_key[0]

        logger.debug("Inserted document", collection=self.name, id=str(new_id))
        return str(new_id)

    async def update(self, selector: Mapping[str, Any], modifier: Mapping[str, Any]) -> int:
        """Apply ``modifier`` to every row matching ``selector``; returns the row count."""
        stmt = (
            update(self.table)
            .where(*self._where(selector))
            .values(**self._modifier_values(modifier))
        )
        async with get_async_session() as session:
            result = await session.execute(stmt)
            count = result.rowcount

        logger.debug("Updated documents", collection=self.name, count=count)
        return count

    async def remove(self, selector: Mapping[str, Any]) -> int:
        """Delete every row matching ``selector``; returns the row count."""
        stmt = delete(self.table).where(*self._where(selector))
        async with get_async_session() as session:
            result = await session.execute(stmt)
            count = result.rowcount

        logger.debug("Removed documents", collection=self.name, count=count)
        return count


class Database:
    """Registry of collections reachable by attribute or item access."""

    def __init__(self):
        self._collections: dict[str, Collection] = {}

    def register(self, name: str, model: type) -> Collection:
        """
        Register a model under a collection name.

        Re-registering the same model is a no-op.

        Raises:
            ValueError: If the name is taken by a different model
        """
        existing = self._collections.get(name)
        if existing is not None:
            if existing.model is model:
                return existing
            raise ValueError(f"Collection '{name}' is already registered")

        collection = Collection(name, model)
        self._collections[name] = collection
        logger.debug("Registered collection", name=name, table=collection.table.name)
        return collection

    def unregister(self, name: str) -> bool:
        return self._collections.pop(name, None) is not None

    def collection(self, name: str) -> Collection:
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(f"Unknown collection: {name}") from None

    def list_names(self) -> list[str]:
        return list(self._collections)

    def session(self):
        """Open an async session on the shared pool."""
        return get_async_session()

    def __getattr__(self, name: str) -> Collection:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._collections[name]
        except KeyError:
            raise AttributeError(f"Unknown collection: {name}") from None

    def __getitem__(self, name: str) -> Collection:
        return self.collection(name)

    def __contains__(self, name: object) -> bool:
        return name in self._collections

    def __len__(self) -> int:
        return len(self._collections)


# Global database handle
db = Database()
