"""
Tests for schema loading and merging.
"""

import warnings

import pytest
import strawberry
from strawberry.extensions import SchemaExtension

from gqlkit.loader import SchemaLoadError, SchemaRegistry, build_schema, load, validate_schema


@strawberry.type
class GreetingQuery:
    @strawberry.field
    def hello(self) -> str:
        return "hello"


@strawberry.type
class FarewellQuery:
    @strawberry.field
    def goodbye(self) -> str:
        return "goodbye"


@strawberry.type
class OtherHelloQuery:
    @strawberry.field
    def hello(self) -> str:
        return "hi"


@strawberry.type
class CounterMutation:
    @strawberry.mutation
    def increment(self, value: int) -> int:
        return value + 1


@strawberry.type
class FailingQuery:
    @strawberry.field
    def explode(self) -> str:
        raise ValueError("internal details")


class TestSchemaRegistry:
    def test_rejects_non_strawberry_types(self):
        registry = SchemaRegistry()

        class Plain:
            pass

        with pytest.raises(SchemaLoadError, match="is not a Strawberry type"):
            registry.add(query=Plain)

    def test_rejects_non_type_values(self):
        with pytest.raises(SchemaLoadError, match="Expected a Strawberry type"):
            SchemaRegistry().add(query="GreetingQuery")

    def test_accepts_single_type_or_sequence_and_ignores_repeats(self):
        registry = SchemaRegistry()
        registry.add(query=GreetingQuery)
        registry.add(query=[GreetingQuery, FarewellQuery])

        assert registry.query == [GreetingQuery, FarewellQuery]

    def test_copy_is_independent(self):
        registry = SchemaRegistry()
        registry.add(query=GreetingQuery)
        clone = registry.copy()
        clone.add(query=FarewellQuery)

        assert registry.query == [GreetingQuery]
        assert clone.query == [GreetingQuery, FarewellQuery]

    def test_clear(self):
        registry = SchemaRegistry()
        registry.add(query=GreetingQuery, mutation=CounterMutation)
        registry.clear()

        assert registry.is_empty


class TestBuildSchema:
    def test_merges_loaded_query_types(self):
        registry = SchemaRegistry()
        registry.add(query=GreetingQuery)
        registry.add(query=FarewellQuery, mutation=CounterMutation)

        schema = build_schema(schema_registry=registry)
        result = schema.execute_sync("{ hello goodbye }")

        assert result.errors is None
        assert result.data == {"hello": "hello", "goodbye": "goodbye"}

        result = schema.execute_sync("mutation { increment(value: 41) }")
        assert result.data == {"increment": 42}

    def test_duplicate_field_names_are_rejected(self):
        registry = SchemaRegistry()
        registry.add(query=[GreetingQuery, OtherHelloQuery])

        with pytest.raises(SchemaLoadError, match="Field 'hello'"):
            build_schema(schema_registry=registry)

    def test_query_type_is_required(self):
        registry = SchemaRegistry()
        registry.add(mutation=CounterMutation)

        with pytest.raises(SchemaLoadError, match="No query type loaded"):
            build_schema(schema_registry=registry)

    def test_introspection_can_be_disabled(self):
        registry = SchemaRegistry()
        registry.add(query=GreetingQuery)

        open_schema = build_schema(schema_registry=registry)
        closed_schema = build_schema(schema_registry=registry, introspection=False)
        query = "{ __schema { queryType { name } } }"

        expected = {"__schema": {"queryType": {"name": "Query"}}}
        assert open_schema.execute_sync(query).data == expected
        assert closed_schema.execute_sync(query).errors

    def test_mask_errors_hides_resolver_messages(self):
        registry = SchemaRegistry()
        registry.add(query=FailingQuery)

        result = build_schema(schema_registry=registry, mask_errors=True).execute_sync(
            "{ explode }"
        )

        assert result.errors
        assert "internal details" not in result.errors[0].message

    def test_builtin_extensions_are_built_per_request(self):
        registry = SchemaRegistry()
        registry.add(query=FailingQuery)

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            schema = build_schema(schema_registry=registry, introspection=False, mask_errors=True)

        assert not any(isinstance(ext, SchemaExtension) for ext in schema.extensions)
        first = schema.execute_sync("{ explode }")
        second = schema.execute_sync("{ __schema { queryType { name } } }")
        assert "internal details" not in first.errors[0].message
        assert second.errors

    def test_defaults_to_shared_registry(self, schema_registry):
        load(query=GreetingQuery)

        result = build_schema().execute_sync("{ hello me { id } }", context_value={})

        assert result.errors is None
        assert result.data == {"hello": "hello", "me": None}


class TestValidateSchema:
    def test_valid_schema_passes(self):
        registry = SchemaRegistry()
        registry.add(query=GreetingQuery)

        validate_schema(build_schema(schema_registry=registry))
