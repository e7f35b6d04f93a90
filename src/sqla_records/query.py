from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from .datastructures import frozendict
from .schema import PREFIX_SEPARATOR


if TYPE_CHECKING:
    from .connection import Connection, Row
    from .model import Model
    from .schema import Schema


T = TypeVar("T")


def _format_alias(alias: str) -> str:
    return alias.rstrip(PREFIX_SEPARATOR)


def _format_prefix(alias: str) -> str:
    alias = _format_alias(alias)

    return alias + PREFIX_SEPARATOR if alias else ""


class Query:
    """Raw SQL that borrows table and field lists from schemas.

    Every ``with_*`` method returns a new query. Placeholders are replaced
    before execution: ``{table}`` and ``{fields}`` for the schema attached
    without alias, ``{a.table}`` and ``{a.fields}`` for alias ``a``, whose
    fields are selected as ``a_<field>``. Parameters are named (``:name``).

    Example:
        >>> rows = (
        ...     repository.query(
        ...         "SELECT {p.fields}, {h.fields} FROM {p.table} "
        ...         "LEFT JOIN {h.table} ON h.id = p.home_id WHERE p.age > :age"
        ...     )
        ...     .with_schema(person, "p")
        ...     .with_schema(house, "h")
        ...     .with_parameters({"age": 18})
        ...     .fetch_models("p", {"h": "home"})
        ... )
    """

    __slots__ = ("_connection", "_parameters", "_schemas", "_sql")

    def __init__(
        self,
        connection: Connection,
        sql: str,
        schemas: Mapping[str, Schema] | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        self._connection = connection
        self._sql = sql
        self._schemas: frozendict[str, Schema] = frozendict(schemas or {})
        self._parameters: frozendict[str, Any] = frozendict(parameters or {})

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._sql!r}>"

    @property
    def sql(self) -> str:
        return self._sql

    def _replace(self, **changes: Any) -> Query:
        options = {"schemas": self._schemas, "parameters": self._parameters, **changes}

        return type(self)(self._connection, self._sql, **options)

    def with_schema(self, schema: Schema, alias: str = "") -> Query:
        return self._replace(schemas=self._schemas.copy(**{_format_alias(alias): schema}))

    def with_parameters(self, parameters: Mapping[str, Any]) -> Query:
        return self._replace(parameters=self._parameters.copy(**parameters))

    def without_schemas(self) -> Query:
        return self._replace(schemas={})

    def without_parameters(self) -> Query:
        return self._replace(parameters={})

    def get_sql(self) -> str:
        """Return the SQL with every schema placeholder replaced."""
        sql = self._sql

        for alias, schema in self._schemas.items():
            if not alias:
                sql = sql.replace("{table}", self._connection.format_table(schema.table))
                sql = sql.replace("{fields}", self._connection.format_fields(schema.fields))
                continue

            sql = sql.replace(f"{{{alias}.table}}", self._connection.format_table(schema.table, alias))
            sql = sql.replace(
                f"{{{alias}.fields}}",
                self._connection.format_fields(schema.fields, alias, _format_prefix(alias)),
            )

        return sql

    def generate_rows(self) -> Iterator[Row]:
        yield from self._connection.query(self.get_sql(), self._parameters)

    def generate_models(
        self,
        alias: str = "",
        relationships: Mapping[str, str] | None = None,
    ) -> Iterator[Model]:
        """Yield a model per row, built from the columns of *alias*.

        Args:
            alias: Alias of the schema the models are built from. May be
                omitted when exactly one schema is attached.
            relationships: Maps the alias of a joined schema to the name of
                a unique relationship filled from the same row.

        Raises:
            ValueError: If no schema is attached under *alias*.
        """
        alias = _format_alias(alias)

        if alias not in self._schemas:
            if alias or len(self._schemas) != 1:
                raise ValueError("No schema selected for generating database models")

            alias = next(iter(self._schemas))

        schema = self._schemas[alias]
        prefix = _format_prefix(alias)
        joined = {_format_prefix(key): name for key, name in (relationships or {}).items()}

        for row in self.generate_rows():
            yield schema.create_model_from_row(row, prefix, joined)

    def generate_callback(self, callback: Callable[[Row], T]) -> Iterator[T]:
        for row in self.generate_rows():
            yield callback(row)

    def fetch_rows(self) -> list[Row]:
        return list(self.generate_rows())

    def fetch_models(
        self,
        alias: str = "",
        relationships: Mapping[str, str] | None = None,
    ) -> list[Model]:
        return list(self.generate_models(alias, relationships))

    def fetch_callback(self, callback: Callable[[Row], T]) -> list[T]:
        return list(self.generate_callback(callback))
