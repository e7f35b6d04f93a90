from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

import sqlalchemy as sa

from .tools import (
    Order,
    build_conditions,
    build_order_by,
    check_fields,
    check_value,
    get_table,
)


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


logger = logging.getLogger(__name__)

Row = dict[str, Any]
Conditions = Mapping[str, Any]


@runtime_checkable
class Connection(Protocol):
    """The database operations records, repositories and fillers rely on.

    Row iterators are finite and single pass; callers that need a row twice
    must materialize them.
    """

    def select(
        self,
        fields: Sequence[str],
        table: str,
        conditions: Conditions,
        order_by: Mapping[str, Order] | None = None,
        limit: int | None = None,
    ) -> Iterator[Row]: ...

    def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        primary_key: str | None = None,
    ) -> Any: ...

    def update(self, table: str, values: Mapping[str, Any], conditions: Conditions) -> int: ...

    def delete(self, table: str, conditions: Conditions) -> int: ...

    def query(self, sql: str, parameters: Mapping[str, Any] | None = None) -> Iterator[Row]: ...

    def format_table(self, table: str, alias: str = "") -> str: ...

    def format_fields(self, fields: Sequence[str], table: str = "", prefix: str = "") -> str: ...


class SqlAlchemyConnection:
    """:class:`Connection` implemented with SQLAlchemy Core.

    When bound to an ``Engine`` every call runs in its own transaction. When
    bound to a ``Connection`` statements run on it as-is and the caller owns
    the transaction::

        with engine.connect() as conn, conn.begin():
            repository = PersonRepository(SqlAlchemyConnection(conn), ...)
    """

    __slots__ = ("_bind",)

    def __init__(self, bind: sa.Engine | sa.Connection) -> None:
        self._bind = bind

    @classmethod
    def from_url(cls, url: str | sa.URL, **engine_options: Any) -> Self:
        """Create a connection over a new engine; *engine_options* go to ``create_engine``."""
        return cls(sa.create_engine(url, **engine_options))

    @property
    def bind(self) -> sa.Engine | sa.Connection:
        return self._bind

    @property
    def dialect(self) -> sa.Dialect:
        return self._bind.dialect

    @contextmanager
    def _begin(self) -> Iterator[sa.Connection]:
        if isinstance(self._bind, sa.Connection):
            yield self._bind
            return

        with self._bind.begin() as connection:
            yield connection

    def _fetch(self, statement: sa.Executable, parameters: Mapping[str, Any] | None = None) -> list[Row]:
        logger.debug("Executing %s", statement)

        with self._begin() as connection:
            result = connection.execute(statement, dict(parameters or {}))

            if not result.returns_rows:
                return []

            return [dict(row) for row in result.mappings()]

    def _write(self, statement: sa.Executable) -> int:
        logger.debug("Executing %s", statement)

        with self._begin() as connection:
            return connection.execute(statement).rowcount

    def select(
        self,
        fields: Sequence[str],
        table: str,
        conditions: Conditions,
        order_by: Mapping[str, Order] | None = None,
        limit: int | None = None,
    ) -> Iterator[Row]:
        """Select *fields* from *table* where every condition holds.

        ``limit`` is only applied together with ``order_by``; an unordered
        limit would pick arbitrary rows.
        """
        fields = check_fields(fields)
        order_by = order_by or {}
        clause = get_table(table, *fields, *conditions, *order_by)
        statement = sa.select(*(clause.c[field] for field in fields))

        if conditions:
            statement = statement.where(*build_conditions(clause, conditions))

        if order_by:
            statement = statement.order_by(*build_order_by(clause, order_by))

            if limit is not None:
                statement = statement.limit(limit)

        return iter(self._fetch(statement))

    def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        primary_key: str | None = None,
    ) -> Any:
        """Insert one row; return the generated value of *primary_key* if given."""
        if not values:
            raise ValueError("No values provided for the query")

        clause = get_table(table, *values, *((primary_key,) if primary_key else ()))
        statement = sa.insert(clause).values({field: check_value(value) for field, value in values.items()})
        logger.debug("Executing %s", statement)

        with self._begin() as connection:
            if primary_key is None:
                connection.execute(statement)
                return None

            if connection.dialect.insert_returning:
                return connection.execute(statement.returning(clause.c[primary_key])).scalar_one()

            return connection.execute(statement).lastrowid

    def update(self, table: str, values: Mapping[str, Any], conditions: Conditions) -> int:
        if not values:
            raise ValueError("No values provided for the query")

        if not conditions:
            raise ValueError("No conditions provided for the query")

        clause = get_table(table, *values, *conditions)
        statement = (
            sa.update(clause)
            .where(*build_conditions(clause, conditions))
            .values({field: check_value(value) for field, value in values.items()})
        )

        return self._write(statement)

    def delete(self, table: str, conditions: Conditions) -> int:
        if not conditions:
            raise ValueError("No conditions provided for the query")

        clause = get_table(table, *conditions)

        return self._write(sa.delete(clause).where(*build_conditions(clause, conditions)))

    def query(self, sql: str, parameters: Mapping[str, Any] | None = None) -> Iterator[Row]:
        """Run raw SQL with named (``:name``) parameters and return its rows."""
        parameters = {name: check_value(value) for name, value in (parameters or {}).items()}

        return iter(self._fetch(sa.text(sql), parameters))

    def _quote(self, identifier: str) -> str:
        return self.dialect.identifier_preparer.quote_identifier(identifier)

    def format_table(self, table: str, alias: str = "") -> str:
        if not table:
            raise ValueError("No table provided for the query")

        return f"{self._quote(table)} AS {self._quote(alias)}" if alias else self._quote(table)

    def format_fields(self, fields: Sequence[str], table: str = "", prefix: str = "") -> str:
        formatted = []

        for field in check_fields(fields):
            column = f"{self._quote(table)}.{self._quote(field)}" if table else self._quote(field)
            formatted.append(f"{column} AS {self._quote(prefix + field)}" if prefix else column)

        return ", ".join(formatted)
