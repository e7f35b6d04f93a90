from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from .datastructures import frozendict
from .errors import RelationshipNotFoundError, SchemaError
from .record import Record
from .relationship import Relationship


if TYPE_CHECKING:
    from .model import Model


PREFIX_SEPARATOR: Final[str] = "_"

ModelFactory = Callable[[Record], "Model"]


def _as_fields(value: str | Sequence[str]) -> tuple[str, ...]:
    return (value,) if isinstance(value, str) else tuple(value)


@dataclass(slots=True, frozen=True)
class RelationshipDefinition:
    """Declaration of a relationship, resolved lazily into a :class:`Relationship`.

    Attributes:
        key: Field or fields of the declaring schema.
        schema: Name of the referenced schema in the registry.
        field: Field or fields of the referenced schema.
        unique: Declare the relationship as single valued even when the
            referenced fields are not the referenced primary key.
        aliases: Alternative names that resolve to this relationship.
    """

    key: str | Sequence[str]
    schema: str
    field: str | Sequence[str]
    unique: bool = False
    aliases: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", _as_fields(self.key))
        object.__setattr__(self, "field", _as_fields(self.field))
        object.__setattr__(self, "aliases", tuple(self.aliases))

        if not self.key or len(self.key) != len(self.field):
            raise SchemaError("Relationship key and field must be non-empty and of equal length")


class Schema:
    """Table layout and relationship declarations of one record type.

    The ``name`` is the stable identifier of the schema: relationship
    definitions refer to other schemas by name and identity caches key
    records by it.

    Example:
        >>> registry = SchemaRegistry()
        >>> house = registry.register(Schema(
        ...     "house", table="houses", fields=("id", "street"), primary_key="id",
        ...     relationships={"residents": RelationshipDefinition("id", "person", "home_id")},
        ... ))
    """

    def __init__(
        self,
        name: str,
        *,
        table: str,
        fields: Sequence[str],
        primary_key: str | Sequence[str],
        relationships: Mapping[str, RelationshipDefinition] | None = None,
        model_factory: ModelFactory | None = None,
    ) -> None:
        self._name = name
        self._table = table
        self._fields = tuple(fields)
        self._primary_key = _as_fields(primary_key)
        self._definitions: frozendict[str, RelationshipDefinition] = frozendict(relationships or {})
        self._model_factory = model_factory
        self._registry: SchemaRegistry | None = None
        self._relationships: dict[str, Relationship] = {}
        self._aliases: dict[str, str] = {}

        if not name or not table:
            raise SchemaError("Schema name and table must not be empty")

        if len(set(self._fields)) != len(self._fields):
            raise SchemaError(f"Duplicate fields declared in schema {name!r}")

        if missing := set(self._primary_key).difference(self._fields):
            raise SchemaError(f"Primary key fields {sorted(missing)} are not defined in {name!r}")

        for relationship_name, definition in self._definitions.items():
            if missing := set(definition.key).difference(self._fields):
                raise SchemaError(
                    f"Relationship {relationship_name!r} uses fields {sorted(missing)} "
                    f"that are not defined in {name!r}"
                )

            for alias in definition.aliases:
                if alias in self._definitions or alias in self._aliases:
                    raise SchemaError(f"Relationship alias {alias!r} is already in use in {name!r}")

                self._aliases[alias] = relationship_name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._name} table={self._table!r}>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def table(self) -> str:
        return self._table

    @property
    def fields(self) -> tuple[str, ...]:
        return self._fields

    @property
    def primary_key(self) -> tuple[str, ...]:
        return self._primary_key

    @property
    def registry(self) -> SchemaRegistry:
        if self._registry is None:
            raise SchemaError(f"Schema {self._name!r} is not registered in a SchemaRegistry")

        return self._registry

    def bind(self, registry: SchemaRegistry) -> None:
        if self._registry is not None and self._registry is not registry:
            raise SchemaError(f"Schema {self._name!r} is already registered in another registry")

        self._registry = registry

    def get_relationship_definitions(self) -> Mapping[str, RelationshipDefinition]:
        return self._definitions

    def get_relationship(self, name: str) -> Relationship:
        """Return the relationship declared as *name* or one of its aliases.

        Raises:
            RelationshipNotFoundError: If no such relationship is declared.
        """
        canonical = self._aliases.get(name, name)

        if (relationship := self._relationships.get(canonical)) is not None:
            return relationship

        definition = self._definitions.get(canonical)

        if definition is None:
            raise RelationshipNotFoundError(
                f"No relationship {name!r} on {self._name!r}. Available: {list(self._definitions)}"
            )

        relationship = Relationship(
            canonical,
            self,
            definition.key,
            self.registry[definition.schema],
            definition.field,
            unique=definition.unique,
        )
        self._relationships[canonical] = relationship

        return relationship

    def get_relationships(self) -> dict[str, Relationship]:
        return {name: self.get_relationship(name) for name in self._definitions}

    def create_record(self, model: Model | None = None) -> Record:
        return Record(self, model)

    def create_record_from_values(self, values: Mapping[str, Any]) -> Record:
        record = self.create_record()
        record.set_database_values(values)

        return record

    def create_record_from_row(self, row: Mapping[str, Any], prefix: str = "") -> Record:
        """Build a record from a result row, taking ``<prefix>_<field>`` columns when prefixed."""
        if not prefix:
            return self.create_record_from_values({key: row[key] for key in self._fields if key in row})

        prefix = prefix.rstrip(PREFIX_SEPARATOR) + PREFIX_SEPARATOR
        values = {key: row[prefix + key] for key in self._fields if prefix + key in row}

        return self.create_record_from_values(values)

    def create_model(self, record: Record) -> Model:
        if self._model_factory is None:
            from .model import Model

            return Model(record)

        return self._model_factory(record)

    def create_model_from_row(
        self,
        row: Mapping[str, Any],
        prefix: str = "",
        relationships: Mapping[str, str] | None = None,
    ) -> Model:
        """Build a model from a joined row.

        *relationships* maps the column prefix of a joined table to the name
        of a unique relationship that is wired with the record built from
        those columns.
        """
        record = self.create_record_from_row(row, prefix)

        for key, name in (relationships or {}).items():
            relationship = self.get_relationship(name)
            referenced = relationship.referenced_schema.create_record_from_row(row, key)
            relationship.fill_single_record(record, referenced)

        return record.get_model()


@dataclass(slots=True)
class SchemaRegistry:
    """Lookup of schemas by name.

    Relationship definitions name their referenced schema, so every schema
    taking part in a relationship must be registered in the same registry.
    """

    _schemas: dict[str, Schema] = field(default_factory=dict)

    def register(self, schema: Schema) -> Schema:
        if schema.name in self._schemas and self._schemas[schema.name] is not schema:
            raise SchemaError(f"A different schema named {schema.name!r} is already registered")

        schema.bind(self)
        self._schemas[schema.name] = schema

        return schema

    def get(self, name: str) -> Schema | None:
        return self._schemas.get(name)

    def __getitem__(self, name: str) -> Schema:
        try:
            return self._schemas[name]
        except KeyError:
            raise SchemaError(
                f"Unknown schema {name!r}. Registered: {list(self._schemas)}"
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[Schema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)

    @property
    def schemas(self) -> Mapping[str, Schema]:
        """The registered schemas by name (read-only)."""
        return frozendict(self._schemas)

    def validate(self) -> None:
        """Resolve every declared relationship so configuration errors surface now."""
        for schema in self._schemas.values():
            schema.get_relationships()
