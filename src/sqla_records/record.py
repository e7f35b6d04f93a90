from __future__ import annotations

import enum
from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .datastructures import frozendict
from .errors import (
    CardinalityError,
    IncompleteKeyError,
    InvalidFieldError,
    RecordNotIdentifiableError,
    RecordStateError,
    RelationshipNotLoadedError,
    SchemaMismatchError,
)


if TYPE_CHECKING:
    from .model import Model
    from .relationship import Relationship
    from .schema import Schema


class RecordState(enum.Enum):
    """Persistence state of a record."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class Record:
    """In-memory state of a single database row.

    A record holds the column values of one row, tracks which of them changed
    since the last state transition and keeps the records it is related to,
    keyed by relationship name. A relationship that has never been filled is
    absent; a filled relationship without matches is an empty list.

    The identity of a record is the snapshot of its primary key taken when it
    was loaded or last persisted. Changing the primary key fields in memory
    does not change the identity until the next :meth:`update_state`.

    Field values are accessed like a mapping::

        person = schema.create_record()
        person["first_name"] = "Jane"
        del person["age"]
    """

    __slots__ = (
        "_changed",
        "_model",
        "_primary_key",
        "_referenced",
        "_schema",
        "_state",
        "_values",
    )

    def __init__(self, schema: Schema, model: Model | None = None) -> None:
        self._schema = schema
        self._values: dict[str, Any] = dict.fromkeys(schema.fields)
        self._changed: set[str] = set()
        self._state = RecordState.INSERT
        self._primary_key: frozendict[str, Any] | None = None
        self._referenced: dict[str, list[Record]] = {}
        self._model = model

    def __repr__(self) -> str:
        key = dict(self._primary_key) if self._primary_key is not None else "new"
        return f"<{type(self).__name__} {self._schema.name} {key}>"

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def state(self) -> RecordState:
        return self._state

    def is_new(self) -> bool:
        return self._state is RecordState.INSERT

    def is_deleted(self) -> bool:
        return self._state is RecordState.DELETE

    def is_empty(self) -> bool:
        """Tell whether every field is ``None``, e.g. an unmatched outer join."""
        return all(value is None for value in self._values.values())

    def get_primary_key(self) -> frozendict[str, Any]:
        """Return the primary key as of the last load or persist.

        Raises:
            RecordNotIdentifiableError: If the record has never been persisted.
        """
        if self._primary_key is None or self._state is RecordState.INSERT:
            raise RecordNotIdentifiableError(
                f"Cannot identify a new {self._schema.name!r} record that has not been persisted"
            )

        return self._primary_key

    def update_state(self, state: RecordState) -> None:
        """Move the record to the state that follows a successful write.

        Any target other than ``DELETE`` results in ``UPDATE``, so calling
        this with ``RecordState.INSERT`` after an insert is the normal usage.
        """
        if self._state is RecordState.DELETE:
            raise RecordStateError("Cannot change the state of a deleted record")

        self._state = RecordState.DELETE if state is RecordState.DELETE else RecordState.UPDATE
        self._changed.clear()
        self._primary_key = self._snapshot_primary_key()

    def _snapshot_primary_key(self) -> frozendict[str, Any]:
        return frozendict((key, self._values[key]) for key in self._schema.primary_key)

    def get_model(self) -> Model:
        """Return the model of the record, creating it with the schema's factory."""
        if self._model is None:
            self._model = self._schema.create_model(self)

        return self._model

    def bind_model(self, model: Model) -> None:
        if self._model is not None and self._model is not model:
            raise RecordStateError("The record is already bound to a different model")

        self._model = model

    def get_changed_fields(self) -> list[str]:
        return [field for field in self._values if field in self._changed]

    def get_database_values(self) -> dict[str, Any]:
        return dict(self._values)

    def set_database_values(self, values: Mapping[str, Any]) -> None:
        """Replace all values with a row loaded from the database.

        The row must contain exactly the schema's fields. The record becomes
        a persisted record identified by the row's primary key.
        """
        if set(values) != set(self._values) or len(values) != len(self._values):
            raise InvalidFieldError(
                f"Invalid set of database values for {self._schema.name!r}: "
                f"expected {list(self._values)}, got {list(values)}"
            )

        if self._state is RecordState.DELETE:
            raise RecordStateError("Cannot set database values on a deleted record")

        self._values = {field: values[field] for field in self._values}
        self._changed.clear()
        self._state = RecordState.UPDATE
        self._primary_key = self._snapshot_primary_key()

    def _check_field(self, field: str) -> None:
        if field not in self._values:
            raise InvalidFieldError(f"Invalid record field {field!r} for {self._schema.name!r}")

    def __getitem__(self, field: str) -> Any:
        self._check_field(field)

        return self._values[field]

    def __setitem__(self, field: str, value: Any) -> None:
        self._check_field(field)

        if self._state is RecordState.DELETE:
            raise RecordStateError("Cannot modify a deleted record")

        self._values[field] = value
        self._changed.add(field)

    def __delitem__(self, field: str) -> None:
        self[field] = None

        # A new record has nothing stored yet, so the field is no longer a change.
        if self._state is RecordState.INSERT:
            self._changed.discard(field)

    def __contains__(self, field: object) -> bool:
        return field in self._values

    def has_referenced_records(self, name: str) -> bool:
        return self._schema.get_relationship(name).name in self._referenced

    def get_referenced_records(self, name: str) -> list[Record]:
        """Return the records filled for relationship *name*.

        Raises:
            RelationshipNotLoadedError: If the relationship was never filled.
        """
        relationship = self._schema.get_relationship(name)

        if relationship.name not in self._referenced:
            raise RelationshipNotLoadedError(
                f"Cannot access relationship {relationship.name!r} of {self._schema.name!r} "
                "that has not been loaded"
            )

        return list(self._referenced[relationship.name])

    def set_referenced_records(self, name: str, records: Iterable[Record]) -> None:
        relationship = self._schema.get_relationship(name)
        records = list(records)

        for record in records:
            if record.schema is not relationship.referenced_schema:
                raise SchemaMismatchError(
                    f"Relationship {relationship.name!r} references {relationship.referenced_schema.name!r} "
                    f"records, got a {record.schema.name!r} record"
                )

        if len(records) > 1 and relationship.unique:
            raise CardinalityError(
                f"Unique relationship {relationship.name!r} cannot reference more than a single record"
            )

        self._referenced[relationship.name] = records

    def get_all_referenced_records(self) -> list[Record]:
        """Return every record reachable through filled relationships.

        The traversal is breadth-first, starts with (and includes) this record
        and visits each record once, so cycles such as spouse links pointing
        back at each other terminate.
        """
        queue: deque[Record] = deque([self])
        seen: set[int] = {id(self)}
        result: list[Record] = []

        while queue:
            record = queue.popleft()
            result.append(record)

            for related in record._referenced.values():  # noqa: SLF001
                for child in related:
                    if id(child) not in seen:
                        seen.add(id(child))
                        queue.append(child)

        return result

    def associate(self, name: str, model: Model) -> None:
        """Point unique relationship *name* at the record of *model*.

        The referenced values are copied into this record's foreign key
        fields. The reverse link is set when the reverse relationship is
        unique, or appended to when it is multi-valued and already loaded.
        A previously associated record no longer lists this one in its
        loaded reverse relationship.
        """
        relationship = self._schema.get_relationship(name)

        if not relationship.unique:
            raise CardinalityError(
                f"Cannot associate a single model to multi-valued relationship {relationship.name!r}"
            )

        record = model.get_database_record()

        if record.schema is not relationship.referenced_schema:
            raise SchemaMismatchError(
                f"Relationship {relationship.name!r} references {relationship.referenced_schema.name!r}, "
                f"got a {record.schema.name!r} model"
            )

        values = [record[field] for field in relationship.referenced_fields]

        if any(value is None for value in values):
            raise IncompleteKeyError(
                f"Cannot associate through {relationship.name!r} to a record with null referenced values"
            )

        for field, value in zip(relationship.fields, values):
            self[field] = value

        reverse = relationship.get_reverse_relationship()

        for previous in self._referenced.get(relationship.name, []):
            if previous is not record and reverse.name in previous._referenced:  # noqa: SLF001
                previous._referenced[reverse.name] = [  # noqa: SLF001
                    linked for linked in previous._referenced[reverse.name] if linked is not self  # noqa: SLF001
                ]

        self._referenced[relationship.name] = [record]

        if reverse.unique:
            record._referenced[reverse.name] = [self]  # noqa: SLF001
        elif reverse.name in record._referenced:  # noqa: SLF001
            linked = record._referenced[reverse.name]  # noqa: SLF001
            if not any(linked_record is self for linked_record in linked):
                linked.append(self)

    def add_association(self, name: str, model: Model) -> None:
        """Associate *model* to this record through the reverse of *name*."""
        relationship = self._schema.get_relationship(name)

        if relationship.unique:
            raise CardinalityError(
                f"Cannot add an association to unique relationship {relationship.name!r}"
            )

        reverse = relationship.get_reverse_relationship()
        model.get_database_record().associate(reverse.name, self.get_model())

    def get_related_model(self, name: str) -> Model | None:
        relationship = self._require_cardinality(name, unique=True)
        records = self.get_referenced_records(relationship.name)

        return records[0].get_model() if records else None

    def get_related_models(self, name: str) -> list[Model]:
        relationship = self._require_cardinality(name, unique=False)

        return [record.get_model() for record in self.get_referenced_records(relationship.name)]

    def get_related_models_by_proxy(self, proxy: str, name: str) -> list[Model]:
        """Return the models two hops away: ``self -> proxy[*] -> name``.

        Typical use is a link table, e.g. ``("parents", "parent")`` walks
        person -> parent link rows -> parent persons.
        """
        proxy_relationship = self._require_cardinality(proxy, unique=False)
        relationship = proxy_relationship.referenced_schema.get_relationship(name)

        if not relationship.unique:
            raise CardinalityError(
                f"Proxied relationship {relationship.name!r} must be a unique relationship"
            )

        models: list[Model] = []

        for record in self.get_referenced_records(proxy_relationship.name):
            models.extend(related.get_model() for related in record.get_referenced_records(relationship.name))

        return models

    def _require_cardinality(self, name: str, *, unique: bool) -> Relationship:
        relationship = self._schema.get_relationship(name)

        if relationship.unique is not unique:
            kind = "a unique" if unique else "a multi-valued"
            raise CardinalityError(f"Relationship {relationship.name!r} is not {kind} relationship")

        return relationship


def ensure_schema(records: Sequence[Record], schema: Schema, message: str) -> None:
    """Raise :class:`SchemaMismatchError` unless all *records* belong to *schema*."""
    for record in records:
        if record.schema is not schema:
            raise SchemaMismatchError(
                f"{message}: expected {schema.name!r}, got {record.schema.name!r}"
            )
