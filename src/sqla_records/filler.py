from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Final

from .datastructures import IdentityMap, format_record_id, frozendict
from .errors import CompositeKeyError
from .record import ensure_schema


if TYPE_CHECKING:
    from .connection import Connection
    from .record import Record
    from .relationship import Relationship
    from .schema import Schema


logger = logging.getLogger(__name__)

PATH_SEPARATOR: Final[str] = "."


@lru_cache(maxsize=1028)
def _parse_paths(paths: tuple[str, ...]) -> frozendict[str, tuple[str, ...]]:
    """Split dotted paths into ``{head: (remaining paths, ...)}`` (cached).

    Heads keep their first-seen order and paths sharing a head merge::

        ("parents.parent", "parents.child", "home")
        -> {"parents": ("parent", "child"), "home": ()}
    """
    tree: dict[str, list[str]] = {}

    for path in paths:
        head, _, rest = path.partition(PATH_SEPARATOR)

        if not head:
            raise ValueError(f"Invalid relationship path {path!r}")

        children = tree.setdefault(head, [])

        if rest and rest not in children:
            children.append(rest)

    return frozendict({head: tuple(children) for head, children in tree.items()})


def parse_paths(paths: Iterable[str]) -> Mapping[str, tuple[str, ...]]:
    """Parse dotted relationship paths into one level of the loading tree."""
    return _parse_paths(tuple(paths))


class RelationshipFiller:
    """Eager loader for relationship paths over a set of records.

    A filler issues at most one ``SELECT`` per relationship and level: for
    ``"parents.parent"`` the link rows of every record are selected with a
    single ``IN`` query, then the parents of every link row with another.
    Records already reachable from the given records, or loaded earlier in
    the same call, are reused instead of selected again, so a row is always
    represented by a single :class:`~sqla_records.record.Record`.

    Example:
        >>> filler = RelationshipFiller(connection)
        >>> filler.fill(people, ["home.residents", "parents.parent"])
        >>> people[0].get_referenced_records("home")
        [<Record house {'id': 1}>]

    Fills are not atomic: when a level fails, the levels before it stay
    filled.
    """

    __slots__ = ("_cache", "_connection")

    def __init__(self, connection: Connection) -> None:
        self._connection = connection
        self._cache = IdentityMap()

    def fill(self, records: Sequence[Record], paths: Iterable[str]) -> None:
        """Fill *paths* for *records*, which must all share one schema."""
        records = list(records)
        paths = (paths,) if isinstance(paths, str) else tuple(paths)

        if not records:
            return

        schema = records[0].schema
        ensure_schema(records, schema, "The provided list of records did not share the same schema")
        self._validate_paths(schema, paths)

        self._cache = IdentityMap()

        for record in records:
            for related in record.get_all_referenced_records():
                # New records have no identity to share.
                if not related.is_new():
                    self._cache.add(related)

        self._fill_relationships(records, paths)

    def _validate_paths(self, schema: Schema, paths: tuple[str, ...]) -> None:
        for name, children in parse_paths(paths).items():
            relationship = schema.get_relationship(name)
            self._check_batchable(relationship)

            if children:
                self._validate_paths(relationship.referenced_schema, children)

    @staticmethod
    def _check_batchable(relationship: Relationship) -> None:
        if relationship.is_composite():
            raise CompositeKeyError(
                f"Filling relationships for composite foreign keys is not supported ({relationship.name!r})"
            )

    def _fill_relationships(self, records: list[Record], paths: Sequence[str]) -> None:
        schema = records[0].schema

        for name, children in parse_paths(paths).items():
            relationship = schema.get_relationship(name)
            loaded = self._fill_relationship(relationship, records)

            if loaded and children:
                self._fill_relationships(loaded, children)

    def _fill_relationship(self, relationship: Relationship, records: list[Record]) -> list[Record]:
        """Fill one relationship for *records* and return the referenced records."""
        self._check_batchable(relationship)

        key = relationship.fields[0]
        field = relationship.referenced_fields[0]
        referenced_schema = relationship.referenced_schema
        references_primary_key = relationship.references_primary_key()

        filled: dict[str, list[Record]] = {}
        options: dict[str, object] = {}

        for record in records:
            value = record[key]

            if value is None:
                record.set_referenced_records(relationship.name, [])
                continue

            record_id = str(value)

            if record.has_referenced_records(relationship.name):
                filled[record_id] = record.get_referenced_records(relationship.name)
            elif references_primary_key and (
                cached := self._cache.get(referenced_schema.name, format_record_id([value]))
            ) is not None:
                filled[record_id] = [cached]
            else:
                options.setdefault(record_id, value)

        loaded: dict[int, Record] = {}

        for related in filled.values():
            loaded.update((id(record), record) for record in related)

        if missing := [value for record_id, value in options.items() if record_id not in filled]:
            logger.debug(
                "Selecting %s rows for %d value(s) of %s.%s",
                referenced_schema.name,
                len(missing),
                relationship.schema.name,
                relationship.name,
            )
            rows = self._connection.select(
                referenced_schema.fields,
                referenced_schema.table,
                {field: missing},
            )

            for row in rows:
                record = self._cache.get_or_create(referenced_schema, row)
                loaded[id(record)] = record

        result = list(loaded.values())
        relationship.fill_relationship(records, result)

        return result
