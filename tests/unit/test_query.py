from __future__ import annotations

import pytest
import sqlalchemy as sa

from sqla_records import Query, SchemaRegistry, SqlAlchemyConnection

from ..models import create_registry


@pytest.fixture
def registry() -> SchemaRegistry:
    return create_registry()


@pytest.fixture
def sqlite() -> SqlAlchemyConnection:
    return SqlAlchemyConnection(sa.create_engine("sqlite://"))


class TestFormatting:
    def test_format_table(self, sqlite: SqlAlchemyConnection) -> None:
        assert sqlite.format_table("houses") == '"houses"'
        assert sqlite.format_table("houses", "h") == '"houses" AS "h"'

    def test_format_fields(self, sqlite: SqlAlchemyConnection) -> None:
        assert sqlite.format_fields(["id", "street"]) == '"id", "street"'
        assert sqlite.format_fields(["id"], "h") == '"h"."id"'
        assert sqlite.format_fields(["id", "street"], "h", "h_") == '"h"."id" AS "h_id", "h"."street" AS "h_street"'

    def test_format_without_fields(self, sqlite: SqlAlchemyConnection) -> None:
        with pytest.raises(ValueError):
            sqlite.format_fields([])


class TestQuerySql:
    def test_unaliased_schema(self, sqlite: SqlAlchemyConnection, registry: SchemaRegistry) -> None:
        query = Query(sqlite, "SELECT {fields} FROM {table}").with_schema(registry["house"])

        assert query.get_sql() == 'SELECT "id", "street" FROM "houses"'

    def test_aliased_schemas(self, sqlite: SqlAlchemyConnection, registry: SchemaRegistry) -> None:
        query = (
            Query(sqlite, "SELECT {h.fields} FROM {h.table} JOIN {l.table} ON l.parent_id = h.id")
            .with_schema(registry["house"], "h")
            .with_schema(registry["person_parent"], "l_")
        )

        assert query.get_sql() == (
            'SELECT "h"."id" AS "h_id", "h"."street" AS "h_street" FROM "houses" AS "h" '
            'JOIN "person_parents" AS "l" ON l.parent_id = h.id'
        )

    def test_immutable(self, sqlite: SqlAlchemyConnection, registry: SchemaRegistry) -> None:
        query = Query(sqlite, "SELECT {fields} FROM {table} WHERE id = :id")
        with_schema = query.with_schema(registry["house"])
        with_parameters = with_schema.with_parameters({"id": 1})

        assert query.get_sql() == "SELECT {fields} FROM {table} WHERE id = :id"
        assert with_schema.without_schemas().get_sql() == query.get_sql()
        assert with_parameters is not with_schema
        assert with_parameters.without_parameters().sql == query.sql

    def test_no_schema_for_models(self, sqlite: SqlAlchemyConnection, registry: SchemaRegistry) -> None:
        query = (
            Query(sqlite, "SELECT 1")
            .with_schema(registry["house"], "h")
            .with_schema(registry["person"], "p")
        )

        with pytest.raises(ValueError, match="No schema selected"):
            query.fetch_models()

        with pytest.raises(ValueError):
            query.fetch_models("x")
