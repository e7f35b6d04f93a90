from __future__ import annotations


class RecordsError(Exception):
    """Base class for every error raised by sqla_records."""


class SchemaError(RecordsError, ValueError):
    """A schema or relationship declaration is invalid."""


class RecordNotIdentifiableError(RecordsError, RuntimeError):
    """The record has no stable primary key (it has never been persisted)."""


class IncompleteKeyError(RecordNotIdentifiableError):
    """A key used for association contains ``None`` values."""


class InvalidRelationshipError(RecordsError, LookupError):
    """A relationship is undefined or cannot be used the way it was asked to."""


class RelationshipNotFoundError(InvalidRelationshipError):
    """The schema declares no relationship with the requested name."""


class ReverseRelationshipError(InvalidRelationshipError):
    """There is no reverse relationship, or more than one candidate."""


class CompositeKeyError(InvalidRelationshipError):
    """Batch filling was attempted on a multi-field relationship."""


class CardinalityError(RecordsError, ValueError):
    """A unique relationship was treated as multi-valued or vice versa."""


class ConsistencyError(RecordsError, ValueError):
    """Records or values contradict each other."""


class DuplicateRecordError(ConsistencyError):
    """Two distinct record instances claim the same row identity."""


class SchemaMismatchError(ConsistencyError):
    """A record does not belong to the schema it was expected to belong to."""


class InvalidFieldError(ConsistencyError):
    """The field is not declared by the record's schema."""


class RelationshipNotLoadedError(RecordsError, RuntimeError):
    """The relationship was never filled for this record.

    This is distinct from a filled relationship without related records,
    which is represented by an empty list.
    """


class RecordStateError(RecordsError, RuntimeError):
    """The record is in a state that does not allow the operation."""


class MissingRecordError(RecordsError, RuntimeError):
    """The database row behind a record no longer exists."""
