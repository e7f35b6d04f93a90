from __future__ import annotations

import pytest

from sqla_records import DuplicateRecordError, IdentityMap, RecordNotIdentifiableError, SchemaRegistry, frozendict
from sqla_records.datastructures import format_record_id

from ..models import create_registry, persisted


@pytest.fixture
def registry() -> SchemaRegistry:
    return create_registry()


class TestFrozendict:
    def test_read_only(self) -> None:
        key: frozendict[str, int] = frozendict({"parent_id": 1, "child_id": 2})

        with pytest.raises(TypeError):
            key["child_id"] = 3  # type: ignore[index]

    def test_equality(self) -> None:
        key: frozendict[str, int] = frozendict(parent_id=1, child_id=2)

        assert key == frozendict({"child_id": 2, "parent_id": 1})
        assert key == {"parent_id": 1, "child_id": 2}
        assert key != frozendict(parent_id=1, child_id=3)
        assert key != [("parent_id", 1), ("child_id", 2)]

    def test_hash(self) -> None:
        first: frozendict[str, int] = frozendict({"id": 1})
        second: frozendict[str, int] = frozendict({"id": 1})

        assert hash(first) == hash(second)
        assert len({first, second}) == 1

    def test_hash_with_tuple_values(self) -> None:
        tree: frozendict[str, tuple[str, ...]] = frozendict({"parents": ("parent", "child")})

        assert isinstance(hash(tree), int)

    def test_copy(self) -> None:
        key: frozendict[str, int] = frozendict({"id": 1})
        other = key.copy(id=2, version=1)

        assert other == {"id": 2, "version": 1}
        assert key == {"id": 1}

    def test_repr(self) -> None:
        assert repr(frozendict({"id": 1})) == "<frozendict {'id': 1}>"


class TestFormatRecordId:
    @pytest.mark.parametrize(
        ("values", "expected"),
        [
            ([1], "1"),
            (["1"], "1"),
            ([1, 2], "1-2"),
            (["a", 3], "a-3"),
        ],
    )
    def test_format(self, values: list[object], expected: str) -> None:
        assert format_record_id(values) == expected


class TestIdentityMap:
    def test_add_and_get(self, registry: SchemaRegistry) -> None:
        identity = IdentityMap()
        record = persisted(registry["person_parent"], parent_id=1, child_id=2)
        identity.add(record)

        assert identity.get("person_parent", "1-2") is record
        assert ("person_parent", "1-2") in identity
        assert ("person", "1-2") not in identity
        assert "person_parent" not in identity
        assert len(identity) == 1

    def test_add_same_record_twice(self, registry: SchemaRegistry) -> None:
        identity = IdentityMap()
        record = persisted(registry["person"], id=1)
        identity.add(record)
        identity.add(record)

        assert len(identity) == 1

    def test_duplicate(self, registry: SchemaRegistry) -> None:
        identity = IdentityMap()
        identity.add(persisted(registry["person"], id=1))

        with pytest.raises(DuplicateRecordError):
            identity.add(persisted(registry["person"], id=1))

    def test_same_key_in_other_schema(self, registry: SchemaRegistry) -> None:
        identity = IdentityMap()
        identity.add(persisted(registry["person"], id=1))
        identity.add(persisted(registry["house"], id=1))

        assert len(identity) == 2

    def test_new_record(self, registry: SchemaRegistry) -> None:
        with pytest.raises(RecordNotIdentifiableError):
            IdentityMap().add(registry["person"].create_record())

    def test_get_or_create(self, registry: SchemaRegistry) -> None:
        identity = IdentityMap()
        schema = registry["house"]
        existing = persisted(schema, id=1, street="Anystreet 1")
        identity.add(existing)

        assert identity.get_or_create(schema, {"id": 1, "street": "Anystreet 1"}) is existing

        created = identity.get_or_create(schema, {"id": 2, "street": "Otherstreet 2"})

        assert created["street"] == "Otherstreet 2"
        assert identity.get_or_create(schema, {"id": 2, "street": "Otherstreet 2"}) is created
        assert identity.get("house", "2") is created
