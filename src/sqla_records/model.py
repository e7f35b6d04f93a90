from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .record import Record


class Model:
    """Domain object backed by a :class:`~sqla_records.record.Record`.

    The constructor takes the record and is the factory used by the schema
    when loading rows, so subclasses pass their own class as the schema's
    ``model_factory`` and expose domain constructors as class methods::

        class House(Model):
            @classmethod
            def create(cls, schema: Schema, street: str) -> House:
                record = schema.create_record()
                record["street"] = street
                return cls(record)

            @property
            def street(self) -> str:
                return self.record["street"]
    """

    __slots__ = ("_record",)

    def __init__(self, record: Record) -> None:
        record.bind_model(self)
        self._record = record

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._record!r}>"

    @property
    def record(self) -> Record:
        return self._record

    def get_database_record(self) -> Record:
        return self._record
