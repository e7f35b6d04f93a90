"""Relational records and batched relationship loading on SQLAlchemy Core.

sqla_records maps database rows to in-memory ``Record`` objects described by
a ``Schema``.  Register schemas in a ``SchemaRegistry``, load records through
a ``Repository`` and call ``fill_relationships(models, ("parents.parent",))``
to populate dotted relationship paths with one batched ``SELECT`` per level,
sharing a single record instance per row.
"""

from ._version import __version__, __version_tuple__
from .connection import Connection, SqlAlchemyConnection
from .datastructures import IdentityMap, frozendict
from .errors import (
    CardinalityError,
    CompositeKeyError,
    ConsistencyError,
    DuplicateRecordError,
    IncompleteKeyError,
    InvalidFieldError,
    InvalidRelationshipError,
    MissingRecordError,
    RecordNotIdentifiableError,
    RecordsError,
    RecordStateError,
    RelationshipNotFoundError,
    RelationshipNotLoadedError,
    ReverseRelationshipError,
    SchemaError,
    SchemaMismatchError,
)
from .filler import RelationshipFiller, parse_paths
from .model import Model
from .query import Query
from .record import Record, RecordState
from .relationship import Relationship
from .repository import Repository
from .schema import RelationshipDefinition, Schema, SchemaRegistry
from .tools import Order, records_cache_clear, records_cache_info


__all__ = (
    "CardinalityError",
    "CompositeKeyError",
    "Connection",
    "ConsistencyError",
    "DuplicateRecordError",
    "IdentityMap",
    "IncompleteKeyError",
    "InvalidFieldError",
    "InvalidRelationshipError",
    "MissingRecordError",
    "Model",
    "Order",
    "Query",
    "Record",
    "RecordNotIdentifiableError",
    "RecordState",
    "RecordStateError",
    "RecordsError",
    "Relationship",
    "RelationshipDefinition",
    "RelationshipFiller",
    "RelationshipNotFoundError",
    "RelationshipNotLoadedError",
    "Repository",
    "ReverseRelationshipError",
    "Schema",
    "SchemaError",
    "SchemaMismatchError",
    "SchemaRegistry",
    "SqlAlchemyConnection",
    "__version__",
    "__version_tuple__",
    "frozendict",
    "parse_paths",
    "records_cache_clear",
    "records_cache_info",
)
