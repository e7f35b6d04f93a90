from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from .errors import (
    CardinalityError,
    CompositeKeyError,
    ConsistencyError,
    ReverseRelationshipError,
    SchemaError,
)
from .record import ensure_schema


if TYPE_CHECKING:
    from .record import Record
    from .schema import Schema


class Relationship:
    """A named, directed association between two schemas.

    ``schema.fields[i]`` references ``referenced_schema.referenced_fields[i]``.
    A relationship is unique (references at most one row) when declared so,
    or when its referenced fields cover the whole primary key of the
    referenced schema.

    Relationships are created by :meth:`Schema.get_relationship` and are
    immutable once built, apart from the lazily detected reverse.
    """

    __slots__ = (
        "_fields",
        "_name",
        "_referenced_fields",
        "_referenced_schema",
        "_reverse",
        "_schema",
        "_unique",
    )

    def __init__(
        self,
        name: str,
        schema: Schema,
        fields: Sequence[str],
        referenced_schema: Schema,
        referenced_fields: Sequence[str],
        *,
        unique: bool = False,
    ) -> None:
        self._name = name
        self._schema = schema
        self._fields = tuple(fields)
        self._referenced_schema = referenced_schema
        self._referenced_fields = tuple(referenced_fields)
        self._reverse: Relationship | None = None

        if not self._fields or len(self._fields) != len(self._referenced_fields):
            raise SchemaError(f"Unexpected list of fields in relationship {name!r}")

        if missing := set(self._fields).difference(schema.fields):
            raise SchemaError(
                f"The referencing fields {sorted(missing)} of {name!r} are not defined in {schema.name!r}"
            )

        if missing := set(self._referenced_fields).difference(referenced_schema.fields):
            raise SchemaError(
                f"The referenced fields {sorted(missing)} of {name!r} are not defined "
                f"in {referenced_schema.name!r}"
            )

        primary_key = referenced_schema.primary_key
        self._unique = unique or (
            bool(primary_key) and set(primary_key).issubset(self._referenced_fields)
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self._schema.name}.{self._name} "
            f"{list(self._fields)} -> {self._referenced_schema.name}{list(self._referenced_fields)}>"
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def fields(self) -> tuple[str, ...]:
        return self._fields

    @property
    def referenced_schema(self) -> Schema:
        return self._referenced_schema

    @property
    def referenced_fields(self) -> tuple[str, ...]:
        return self._referenced_fields

    @property
    def unique(self) -> bool:
        return self._unique

    def is_unique_relationship(self) -> bool:
        return self._unique

    def is_composite(self) -> bool:
        return len(self._fields) > 1

    def references_primary_key(self) -> bool:
        """Tell whether the referenced fields are exactly the referenced primary key."""
        return self._referenced_fields == tuple(self._referenced_schema.primary_key)

    def get_reverse_relationship(self) -> Relationship:
        """Return the relationship of the referenced schema pointing back here.

        Raises:
            ReverseRelationshipError: If there is no such relationship or more
                than one.
        """
        if self._reverse is None:
            self._reverse = self._detect_reverse_relationship()

        return self._reverse

    def _detect_reverse_relationship(self) -> Relationship:
        candidates = [
            relationship
            for relationship in self._referenced_schema.get_relationships().values()
            if self._is_reverse(relationship)
        ]

        if len(candidates) > 1:
            raise ReverseRelationshipError(
                f"Multiple reverse relationships exist for {self._schema.name}.{self._name}: "
                f"{[relationship.name for relationship in candidates]}"
            )

        if not candidates:
            raise ReverseRelationshipError(
                f"No reverse relationship exists for {self._schema.name}.{self._name}"
            )

        return candidates[0]

    def _is_reverse(self, relationship: Relationship) -> bool:
        return (
            relationship.schema.name == self._referenced_schema.name
            and relationship.referenced_schema.name == self._schema.name
            and relationship.fields == self._referenced_fields
            and relationship.referenced_fields == self._fields
        )

    def fill_relationship(
        self,
        records: Sequence[Record],
        referenced_records: Sequence[Record],
    ) -> None:
        """Assign *referenced_records* to *records* by matching key values.

        Each record receives the referenced records whose referenced field
        equals its foreign key, or an empty list when the key is ``None`` or
        unmatched. When the reverse relationship is unique, every matched
        referenced record is linked back to the record that references it.

        Only single-field relationships can be filled in batch.
        """
        if self.is_composite():
            raise CompositeKeyError(
                f"Relationship fill is not supported for composite foreign keys ({self._name!r})"
            )

        if not records:
            return

        self._assign(records, self._partition(referenced_records))

    def _partition(self, referenced_records: Sequence[Record]) -> dict[str, list[Record]]:
        ensure_schema(
            referenced_records,
            self._referenced_schema,
            f"The referenced records of {self._name!r} must belong to the referenced schema",
        )

        field = self._referenced_fields[0]
        partitioned: dict[str, list[Record]] = {}

        for record in referenced_records:
            value = record[field]

            if value is None:
                continue

            bucket = partitioned.setdefault(str(value), [])

            if self._unique and bucket:
                raise CardinalityError(
                    f"Unique relationship {self._name!r} cannot reference more than a single record "
                    f"for {field}={value!r}"
                )

            bucket.append(record)

        return partitioned

    def _assign(self, records: Sequence[Record], partitioned: dict[str, list[Record]]) -> None:
        ensure_schema(
            records,
            self._schema,
            f"The filled records of {self._name!r} must belong to the referencing schema",
        )

        field = self._fields[0]
        reverse = self.get_reverse_relationship()

        for record in records:
            value = record[field]
            matched = [] if value is None else partitioned.get(str(value), [])
            record.set_referenced_records(self._name, matched)

            if reverse.unique:
                for referenced in matched:
                    referenced.set_referenced_records(reverse.name, [record])

    def fill_single_record(self, record: Record, referenced_record: Record) -> None:
        """Wire a unique relationship from an already fetched pair of records.

        Used when a joined row has been split into two records. An empty
        referenced record (all ``None``, as produced by an unmatched outer
        join) fills the relationship with an empty list.
        """
        if not self._unique:
            raise CardinalityError(
                f"Only unique relationships can be filled with single records ({self._name!r})"
            )

        if referenced_record.is_empty():
            record.set_referenced_records(self._name, [])
            return

        for key, field in zip(self._fields, self._referenced_fields):
            if str(record[key]) != str(referenced_record[field]):
                raise ConsistencyError(
                    f"Tried to fill {self._name!r} with a record that is not the referenced record"
                )

        record.set_referenced_records(self._name, [referenced_record])
        reverse = self.get_reverse_relationship()

        if reverse.unique:
            referenced_record.set_referenced_records(reverse.name, [record])
