"""Expose database collections to clients as GraphQL CRUD operations.

For a collection exposed as ``posts`` the generated fields are::

    mutation postsInsert(document: JSON!): String!
    mutation postsUpdate(selector: JSON!, modifier: JSON!): Int!
    mutation postsRemove(selector: JSON!): Int!
    query    postsFind(payload: JSON): JSON!

Each operation is enabled with ``True`` or with a firewall callable. A
firewall receives the resolver context followed by the operation arguments,
may be async, may edit the argument dicts in place, and denies by raising.
"""

import inspect
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from dataclasses import fields as dataclass_fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import strawberry
from strawberry.scalars import JSON

from ..database import Collection, db
from ..loader import load
from ..logging import get_logger

logger = get_logger(__name__)

Firewall = Callable[..., Any]

OPERATIONS = ("insert", "update", "remove", "find")
FIND_OPTIONS = {"limit", "offset", "sort"}

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ExposeError(Exception):
    """Raised when an expose declaration is invalid."""

    pass


class NotAuthorizedError(PermissionError):
    """Raised when a caller may not run an exposed operation."""

    pass


@dataclass
class ExposeConfig:
    """What a collection exposes and who may call it."""

    collection: str | None = None
    insert: bool | Firewall = False
    update: bool | Firewall = False
    remove: bool | Firewall = False
    find: bool | Firewall = False
    require_user: bool = False

    @classmethod
    def from_value(cls, name: str, value: Any) -> "ExposeConfig":
        if isinstance(value, ExposeConfig):
            config = value
        elif isinstance(value, Mapping):
            known = {f.name for f in dataclass_fields(cls)}
            unknown = sorted(set(value) - known)
            if unknown:
                raise ExposeError(f"Unknown expose options for '{name}': {', '.join(unknown)}")
            config = cls(**value)
        else:
            raise ExposeError(f"Expose options for '{name}' must be a mapping or ExposeConfig")

        for operation in OPERATIONS:
            permission = getattr(config, operation)
            if not (isinstance(permission, bool) or callable(permission)):
                raise ExposeError(
                    f"'{operation}' for '{name}' must be a bool or a firewall callable"
                )
        return config

    @property
    def enabled(self) -> list[str]:
        return [op for op in OPERATIONS if getattr(self, op) is not False]


def to_json_safe(value: Any) -> Any:
    """Convert database values into JSON-serialisable ones."""
    if isinstance(value, Mapping):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set):
        return [to_json_safe(v) for v in value]
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    return value


async def _guard(
    name: str, operation: str, config: ExposeConfig, context: Any, *arguments: Any
) -> None:
    if config.require_user and not context.get("user_id"):
        logger.warning("Anonymous call to exposed operation", collection=name, operation=operation)
        raise NotAuthorizedError(f"Not authorized to {operation} {name}")

    permission = getattr(config, operation)
    if callable(permission):
        result = permission(context, *arguments)
        if inspect.isawaitable(result):
            await result


def _insert_field(name: str, config: ExposeConfig, collection: Collection):
    async def resolver(info: strawberry.Info, document: JSON) -> str:
        await _guard(name, "insert", config, info.context, document)
        new_id = await collection.insert(document)
        logger.info("Exposed insert", collection=name, id=new_id)
        return new_id

    return strawberry.mutation(resolver=resolver, name=f"{name}Insert")


def _update_field(name: str, config: ExposeConfig, collection: Collection):
    async def resolver(info: strawberry.Info, selector: JSON, modifier: JSON) -> int:
        await _guard(name, "update", config, info.context, selector, modifier)
        count = await collection.update(selector, modifier)
        logger.info("Exposed update", collection=name, count=count)
        return count

    return strawberry.mutation(resolver=resolver, name=f"{name}Update")


def _remove_field(name: str, config: ExposeConfig, collection: Collection):
    async def resolver(info: strawberry.Info, selector: JSON) -> int:
        await _guard(name, "remove", config, info.context, selector)
        count = await collection.remove(selector)
        logger.info("Exposed remove", collection=name, count=count)
        return count

    return strawberry.mutation(resolver=resolver, name=f"{name}Remove")


def _find_field(name: str, config: ExposeConfig, collection: Collection):
    async def resolver(info: strawberry.Info, payload: JSON | None = None) -> JSON:
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ExposeError("Find payload must be an object")
        payload.setdefault("filters", {})
        payload.setdefault("options", {})

        await _guard(name, "find", config, info.context, payload)

        options = payload["options"] or {}
        unknown = sorted(set(options) - FIND_OPTIONS)
        if unknown:
            raise ExposeError(f"Unknown find options: {', '.join(unknown)}")

        rows = await collection.find(
            payload["filters"] or None,
            fields=payload.get("fields"),
            limit=options.get("limit"),
            offset=options.get("offset"),
            sort=options.get("sort"),
        )
        return to_json_safe(rows)

    return strawberry.field(resolver=resolver, name=f"{name}Find")


FIELD_FACTORIES = {
    "insert": ("mutation", _insert_field),
    "update": ("mutation", _update_field),
    "remove": ("mutation", _remove_field),
    "find": ("query", _find_field),
}


def _root_type(type_name: str, attrs: dict[str, Any]) -> type | None:
    if not attrs:
        return None
    namespace = {"__module__": __name__, "__annotations__": {}, **attrs}
    return strawberry.type(type(type_name, (), namespace))


def expose(
    collections: Mapping[str, ExposeConfig | Mapping[str, Any]],
) -> tuple[type | None, type | None]:
    """
    Generate GraphQL operations for database collections and load them.

    Args:
        collections: Exposed name to ExposeConfig (or a dict of its fields)

    Returns:
        The generated (query type, mutation type); either is None when empty

    Raises:
        ExposeError: If a name is invalid, an option is unknown or the
            collection is not registered on ``db``
    """
    query_attrs: dict[str, Any] = {}
    mutation_attrs: dict[str, Any] = {}

    for name, value in collections.items():
        if not isinstance(name, str) or not _NAME_RE.match(name):
            raise ExposeError(f"Invalid exposed name: {name!r}")

        config = ExposeConfig.from_value(name, value)
        collection_name = config.collection or name
        if collection_name not in db:
            raise ExposeError(f"Collection '{collection_name}' is not registered on db")
        collection = db.collection(collection_name)

        for operation in config.enabled:
            root, factory = FIELD_FACTORIES[operation]
            attrs = query_attrs if root == "query" else mutation_attrs
            attrs[f"{name}_{operation}"] = factory(name, config, collection)

        logger.info(
            "Exposed collection",
            name=name,
            collection=collection_name,
            operations=config.enabled,
        )

    type_prefix = "".join(name[:1].upper() + name[1:] for name in collections)
    query_type = _root_type(f"{type_prefix}ExposedQuery", query_attrs)
    mutation_type = _root_type(f"{type_prefix}ExposedMutation", mutation_attrs)

    if query_type is None and mutation_type is None:
        logger.warning("Nothing exposed", names=list(collections))
        return None, None

    load(query=query_type, mutation=mutation_type)
    return query_type, mutation_type
