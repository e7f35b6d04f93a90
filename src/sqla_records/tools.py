from __future__ import annotations

import datetime
import decimal
import enum
import uuid
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any, Final

import sqlalchemy as sa
from sqlalchemy.sql.expression import TableClause


_SCALAR_TYPES: Final[tuple[type, ...]] = (
    str,
    bytes,
    int,
    float,
    bool,
    decimal.Decimal,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    uuid.UUID,
    enum.Enum,
)


class Order(enum.Enum):
    """Sort direction used by ``order_by`` mappings."""

    ASCENDING = "asc"
    DESCENDING = "desc"


@lru_cache(maxsize=512)
def _get_table(name: str, columns: tuple[str, ...]) -> TableClause:
    """Return a lightweight table clause for *name* with *columns* (cached)."""
    return sa.table(name, *(sa.column(column) for column in columns))


def get_table(name: str, *columns: str) -> TableClause:
    """Get a ``TableClause`` exposing *columns* of table *name*.

    The clause carries no type information; values are bound as given.

    Raises:
        ValueError: If the table name is empty.
    """
    if not name:
        raise ValueError("No table provided for the query")

    return _get_table(name, tuple(dict.fromkeys(columns)))


def check_value(value: Any) -> Any:
    """Return *value* if it can be bound as a single query parameter."""
    if value is None or isinstance(value, _SCALAR_TYPES):
        return value

    raise ValueError(f"Invalid parameter value type {type(value).__name__!r}")


def build_clause(column: sa.ColumnClause[Any], value: Any) -> sa.ColumnElement[bool]:
    """Build the condition for one ``field: value`` pair.

    A list or tuple becomes ``IN``; ``None`` (alone or inside the list)
    becomes ``IS NULL``; an empty list matches nothing.
    """
    if isinstance(value, (list, tuple, set, frozenset)):
        values = [check_value(item) for item in value]
        present = [item for item in values if item is not None]

        if len(present) == len(values):
            return column.in_(present) if present else sa.false()

        if present:
            return sa.or_(column.in_(present), column.is_(None))

        return column.is_(None)

    if value is None:
        return column.is_(None)

    return column == check_value(value)


def build_conditions(
    table: TableClause,
    conditions: Mapping[str, Any],
) -> list[sa.ColumnElement[bool]]:
    return [build_clause(table.c[field], value) for field, value in conditions.items()]


def build_order_by(
    table: TableClause,
    order_by: Mapping[str, Order],
) -> list[sa.UnaryExpression[Any]]:
    clauses: list[sa.UnaryExpression[Any]] = []

    for field, direction in order_by.items():
        if direction is Order.ASCENDING:
            clauses.append(table.c[field].asc())
        elif direction is Order.DESCENDING:
            clauses.append(table.c[field].desc())
        else:
            raise ValueError(f"Invalid sorting direction {direction!r} for {field!r}")

    return clauses


def check_fields(fields: Sequence[str]) -> tuple[str, ...]:
    if not fields:
        raise ValueError("No fields provided for the query")

    return tuple(fields)


def records_cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    from .filler import _parse_paths

    return {fn.__name__: fn.cache_info() for fn in (_get_table, _parse_paths)}


def records_cache_clear() -> None:
    """Clear all internal LRU caches."""
    from .filler import _parse_paths

    for fn in (_get_table, _parse_paths):
        fn.cache_clear()
