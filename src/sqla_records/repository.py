from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .errors import ConsistencyError, MissingRecordError, RecordStateError
from .filler import RelationshipFiller
from .query import Query
from .record import RecordState
from .tools import Order


if TYPE_CHECKING:
    from .connection import Connection
    from .model import Model
    from .schema import Schema


logger = logging.getLogger(__name__)


class Repository:
    """Base class for repositories persisting models through a connection.

    Subclasses add domain methods on top of the generic operations::

        class PersonRepository(Repository):
            def __init__(self, connection: Connection, schema: Schema) -> None:
                super().__init__(connection)
                self.schema = schema

            def find_by_id(self, person_id: int) -> PersonModel | None:
                return self.find_by_primary_key(self.schema, person_id)

            def load_family(self, people: list[PersonModel]) -> None:
                self.fill_relationships(people, ["parents.parent", "children.child", "spouse"])
    """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    def find(
        self,
        schema: Schema,
        conditions: Mapping[str, Any],
        order_by: Mapping[str, Order] | None = None,
        limit: int | None = None,
    ) -> list[Model]:
        rows = self.connection.select(schema.fields, schema.table, conditions, order_by, limit)

        return [schema.create_record_from_values(row).get_model() for row in rows]

    def find_one(self, schema: Schema, conditions: Mapping[str, Any]) -> Model | None:
        """Return the first model matching *conditions* in primary key order."""
        order_by = dict.fromkeys(schema.primary_key, Order.ASCENDING)
        models = self.find(schema, conditions, order_by, 1)

        return models[0] if models else None

    def find_by_primary_key(self, schema: Schema, values: Any) -> Model | None:
        """Return the model identified by *values*.

        Args:
            schema: Schema of the model.
            values: A scalar for single field keys, a sequence in primary key
                order or a mapping of primary key fields.

        Raises:
            ValueError: If a key field is missing or given a list value.
            ConsistencyError: If more than one row matches the key.
        """
        models = self.find(schema, self._get_primary_key_conditions(schema, values))

        if len(models) > 1:
            raise ConsistencyError(
                f"Primary key {values!r} matched {len(models)} rows in {schema.table!r}"
            )

        return models[0] if models else None

    @staticmethod
    def _get_primary_key_conditions(schema: Schema, values: Any) -> dict[str, Any]:
        keys = schema.primary_key

        if not isinstance(values, Mapping):
            if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
                values = [values]

            values = dict(zip(keys, values))

        conditions = {}

        for key in keys:
            if values.get(key) is None:
                raise ValueError(f"Missing value for primary key field {key!r}")

            if isinstance(values[key], (list, tuple, set, frozenset, dict)):
                raise ValueError(f"Invalid value provided for primary key field {key!r}")

            conditions[key] = values[key]

        return conditions

    def save(self, model: Model) -> None:
        """Insert a new model or update the changed fields of a loaded one."""
        record = model.get_database_record()

        if record.is_deleted():
            raise RecordStateError("Tried to save a record that has already been deleted")

        if record.is_new():
            self.insert(model)
        else:
            self.update(model)

    def insert(self, model: Model) -> None:
        record = model.get_database_record()
        schema = record.schema
        values = record.get_database_values()

        if len(schema.primary_key) == 1 and values[schema.primary_key[0]] is None:
            primary_key = schema.primary_key[0]
            del values[primary_key]
            record[primary_key] = self.connection.insert(schema.table, values, primary_key)
        else:
            self.connection.insert(schema.table, values)

        record.update_state(RecordState.INSERT)
        logger.debug("Inserted %r", record)

    def update(self, model: Model) -> None:
        record = model.get_database_record()
        primary_key = record.get_primary_key()
        values = record.get_database_values()
        changed = {field: values[field] for field in record.get_changed_fields()}

        if changed and not self.connection.update(record.schema.table, changed, primary_key):
            raise MissingRecordError(f"Tried to update {record!r}, which no longer exists")

        record.update_state(RecordState.UPDATE)

    def delete(self, model: Model) -> None:
        record = model.get_database_record()

        if not self.connection.delete(record.schema.table, record.get_primary_key()):
            raise MissingRecordError(f"Tried to delete {record!r}, which no longer exists")

        record.update_state(RecordState.DELETE)

    def refresh(self, model: Model) -> None:
        """Reload the field values of *model* from its row, discarding changes."""
        record = model.get_database_record()
        schema = record.schema
        rows = list(self.connection.select(schema.fields, schema.table, record.get_primary_key()))

        if not rows:
            raise MissingRecordError(f"Tried to refresh {record!r}, which no longer exists")

        if len(rows) > 1:
            raise ConsistencyError(f"Primary key of {record!r} matched {len(rows)} rows")

        record.set_database_values(rows[0])

    def fill_relationships(self, models: Iterable[Model], paths: Iterable[str]) -> None:
        records = [model.get_database_record() for model in models]
        RelationshipFiller(self.connection).fill(records, paths)

    def query(self, sql: str) -> Query:
        return Query(self.connection, sql)
