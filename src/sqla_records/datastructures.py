from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any, Final, TypeVar

from .errors import DuplicateRecordError


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if TYPE_CHECKING:
    from .record import Record
    from .schema import Schema


K = TypeVar("K")
V = TypeVar("V")

KEY_SEPARATOR: Final[str] = "-"


class frozendict(Mapping[K, V]):  # noqa: N801
    """Read-only, hashable mapping.

    Used for primary key snapshots (``{"id": 1}``) so they can be compared,
    stored in sets and passed around without the record's own values leaking
    out, and for parsed relationship path trees that are kept in an
    ``lru_cache``.

    Example:
        >>> key = frozendict({"parent_id": 1, "child_id": 2})
        >>> key["child_id"]
        2
        >>> key == {"parent_id": 1, "child_id": 2}
        True
        >>> key.copy(child_id=3)
        <frozendict {'parent_id': 1, 'child_id': 3}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: object) -> bool:
        return key in self._dict

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def copy(self, **add_or_replace: Any) -> Self:
        """Return a new instance with *add_or_replace* merged on top."""
        return type(self)(self, **add_or_replace)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        # Computed lazily: snapshot values are scalars, but tree values may be
        # tuples that are only hashed when the mapping itself is.
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash


def format_record_id(values: Iterable[Any]) -> str:
    """Join primary key values into the string used as an identity key.

    Values are stringified so that ``1`` from one driver and ``"1"`` from
    another resolve to the same identity.
    """
    return KEY_SEPARATOR.join(str(value) for value in values)


class IdentityMap:
    """Canonical record instances keyed by ``(schema name, record id)``.

    One map lives for the duration of a single fill. It guarantees that a
    row is represented by exactly one :class:`~sqla_records.record.Record`
    instance, whether that instance was already reachable from the records
    being filled or was built from a freshly selected row.
    """

    __slots__ = ("_records",)

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Record]] = {}

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:  # noqa: PLR2004
            return False

        schema_name, record_id = key
        return record_id in self._records.get(schema_name, {})

    def get(self, schema_name: str, record_id: str) -> Record | None:
        return self._records.get(schema_name, {}).get(record_id)

    def add(self, record: Record) -> None:
        """Register an identifiable record.

        Raises:
            DuplicateRecordError: If another instance already holds the
                same identity.
        """
        schema_name = record.schema.name
        record_id = format_record_id(record.get_primary_key().values())
        bucket = self._records.setdefault(schema_name, {})
        existing = bucket.get(record_id)

        if existing is not None and existing is not record:
            raise DuplicateRecordError(
                f"Duplicated {schema_name!r} record with primary key {record_id!r} "
                "detected when filling relationships"
            )

        bucket[record_id] = record

    def get_or_create(self, schema: Schema, row: Mapping[str, Any]) -> Record:
        """Return the cached record for *row*, creating and caching it if unknown."""
        record_id = format_record_id(row[key] for key in schema.primary_key)
        bucket = self._records.setdefault(schema.name, {})

        if (record := bucket.get(record_id)) is not None:
            return record

        record = schema.create_record_from_values(row)
        bucket[record_id] = record

        return record
