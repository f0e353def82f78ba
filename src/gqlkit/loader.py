"""
Schema loading.

Modules contribute pieces of the GraphQL schema with :func:`load` when they
are imported; :func:`build_schema` merges everything loaded into one
Strawberry schema when the server starts.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import strawberry
from graphql import get_introspection_query, graphql_sync
from graphql import validate_schema as gql_validate_schema
from graphql.validation import NoSchemaIntrospectionCustomRule
from strawberry.extensions import AddValidationRules, MaskErrors
from strawberry.tools import merge_types

from .logging import get_logger

logger = get_logger(__name__)

ROOT_TYPES = ("query", "mutation", "subscription")


class SchemaLoadError(Exception):
    """Raised when loaded schema pieces cannot form a valid schema."""

    pass


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, type):
        return [value]
    if isinstance(value, Sequence) and not isinstance(value, str):
        return list(value)
    raise SchemaLoadError(f"Expected a Strawberry type or a sequence of them, got {value!r}")


def _check_strawberry_type(cls: Any) -> None:
    if not (isinstance(cls, type) and hasattr(cls, "__strawberry_definition__")):
        raise SchemaLoadError(f"{cls!r} is not a Strawberry type")


def field_names(cls: type) -> list[str]:
    """GraphQL-facing names of the fields declared on a Strawberry type."""
    definition = cls.__strawberry_definition__
    return [f.graphql_name or f.python_name for f in definition.fields]


@dataclass
class SchemaRegistry:
    """Accumulates schema pieces contributed through :func:`load`."""

    query: list[type] = field(default_factory=list)
    mutation: list[type] = field(default_factory=list)
    subscription: list[type] = field(default_factory=list)
    types: list[type] = field(default_factory=list)
    extensions: list[Any] = field(default_factory=list)
    scalar_overrides: dict[object, Any] = field(default_factory=dict)

    def add(
        self,
        *,
        query: Any = None,
        mutation: Any = None,
        subscription: Any = None,
        types: Any = None,
        extensions: Iterable[Any] | None = None,
        scalar_overrides: Mapping[object, Any] | None = None,
    ) -> None:
        pieces = {
            "query": query,
            "mutation": mutation,
            "subscription": subscription,
            "types": types,
        }
        for attr, value in pieces.items():
            target: list[type] = getattr(self, attr)
            for cls in _as_list(value):
                _check_strawberry_type(cls)
                if cls not in target:
                    target.append(cls)

        for extension in extensions or []:
            if extension not in self.extensions:
                self.extensions.append(extension)

        self.scalar_overrides.update(scalar_overrides or {})

    def copy(self) -> SchemaRegistry:
        return SchemaRegistry(
            query=list(self.query),
            mutation=list(self.mutation),
            subscription=list(self.subscription),
            types=list(self.types),
            extensions=list(self.extensions),
            scalar_overrides=dict(self.scalar_overrides),
        )

    def clear(self) -> None:
        self.query.clear()
        self.mutation.clear()
        self.subscription.clear()
        self.types.clear()
        self.extensions.clear()
        self.scalar_overrides.clear()

    @property
    def is_empty(self) -> bool:
        return not (self.query or self.mutation or self.subscription or self.types)

    def merged_root(self, root: str) -> type | None:
        """Merge every type loaded for ``root`` into a single root type.

        Raises:
            SchemaLoadError: If two loaded types declare the same field
        """
        classes = getattr(self, root)
        if not classes:
            return None

        owners: dict[str, type] = {}
        for cls in classes:
            for name in field_names(cls):
                if name in owners:
                    raise SchemaLoadError(
                        f"Field '{name}' on {root} is loaded by both "
                        f"{owners[name].__name__} and {cls.__name__}"
                    )
                owners[name] = cls

        return merge_types(root.capitalize(), tuple(classes))


# Global registry instance
registry = SchemaRegistry()


def load(
    *,
    query: Any = None,
    mutation: Any = None,
    subscription: Any = None,
    types: Any = None,
    extensions: Iterable[Any] | None = None,
    scalar_overrides: Mapping[object, Any] | None = None,
) -> None:
    """Contribute schema pieces to the shared registry.

    Each root argument takes a Strawberry type or a sequence of them. Repeated
    calls accumulate; loading the same type twice is a no-op.

    Raises:
        SchemaLoadError: If an argument is not a Strawberry type
    """
    registry.add(
        query=query,
        mutation=mutation,
        subscription=subscription,
        types=types,
        extensions=extensions,
        scalar_overrides=scalar_overrides,
    )
    logger.debug(
        "Schema pieces loaded",
        query=[c.__name__ for c in _as_list(query)],
        mutation=[c.__name__ for c in _as_list(mutation)],
        subscription=[c.__name__ for c in _as_list(subscription)],
    )


def build_schema(
    *,
    introspection: bool = True,
    mask_errors: bool = False,
    schema_registry: SchemaRegistry | None = None,
) -> strawberry.Schema:
    """Build one Strawberry schema from everything loaded.

    Args:
        introspection: Allow ``__schema``/``__type`` queries
        mask_errors: Hide unexpected resolver error messages from clients
        schema_registry: Registry to build from (defaults to the shared one)

    Raises:
        SchemaLoadError: If no query type is loaded or root fields collide
    """
    source = schema_registry if schema_registry is not None else registry

    query = source.merged_root("query")
    if query is None:
        raise SchemaLoadError("No query type loaded; at least one is required")

    extensions = list(source.extensions)
    if not introspection:
        extensions.append(lambda: AddValidationRules([NoSchemaIntrospectionCustomRule]))
    if mask_errors:
        extensions.append(MaskErrors)

    return strawberry.Schema(
        query=query,
        mutation=source.merged_root("mutation"),
        subscription=source.merged_root("subscription"),
        types=list(source.types),
        extensions=extensions,
        scalar_overrides=dict(source.scalar_overrides) or None,
    )


def validate_schema(schema: strawberry.Schema) -> None:
    """Validate a built schema so the server fails fast on unresolved types.

    Raises:
        SchemaLoadError: If the schema is invalid or introspection fails
    """
    graphql_schema = schema._schema

    errors = gql_validate_schema(graphql_schema)
    if errors:
        message = "; ".join(str(e) for e in errors)
        logger.error("GraphQL schema validation failed", error=message)
        raise SchemaLoadError(f"GraphQL schema validation failed: {message}")

    result = graphql_sync(graphql_schema, get_introspection_query())
    if result.errors:
        message = "; ".join(str(e) for e in result.errors)
        logger.error("GraphQL introspection failed", error=message)
        raise SchemaLoadError(f"GraphQL introspection failed: {message}")

    logger.info("GraphQL schema validation successful")
