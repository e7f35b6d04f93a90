from __future__ import annotations

import pytest

from ..models import HouseModel, PersonModel, PersonRepository


@pytest.fixture
def people(repository: PersonRepository) -> list[PersonModel]:
    house = repository.create_house("Anystreet 1")
    repository.save(house)

    people = [
        repository.create_person("Jane", "Doe", 20),
        repository.create_person("John", "Doe", 17),
        repository.create_person("Mary", "Roe", 30),
    ]

    for person in people:
        repository.save(person)

    house.move_people(people[:2])
    jane, john, _ = people
    jane.marry(john)

    for person in people:
        repository.save(person)

    return people


class TestQuery:
    def test_fetch_rows(self, repository: PersonRepository, people: list[PersonModel]) -> None:
        rows = (
            repository.query("SELECT COUNT(*) AS total FROM {table} WHERE last_name = :last_name")
            .with_schema(repository.person)
            .with_parameters({"last_name": "Doe"})
            .fetch_rows()
        )

        assert rows == [{"total": 2}]

    def test_fetch_models(self, repository: PersonRepository, people: list[PersonModel]) -> None:
        models = (
            repository.query("SELECT {fields} FROM {table} WHERE age >= :age ORDER BY age")
            .with_schema(repository.person)
            .with_parameters({"age": 18})
            .fetch_models()
        )

        assert all(isinstance(model, PersonModel) for model in models)
        assert [model.first_name for model in models] == ["Jane", "Mary"]  # type: ignore[attr-defined]

    def test_fetch_callback(self, repository: PersonRepository, people: list[PersonModel]) -> None:
        names = (
            repository.query("SELECT first_name FROM {table} ORDER BY first_name")
            .with_schema(repository.person)
            .fetch_callback(lambda row: row["first_name"].upper())
        )

        assert names == ["JANE", "JOHN", "MARY"]

    def test_generate_rows(self, repository: PersonRepository, people: list[PersonModel]) -> None:
        rows = repository.query("SELECT {fields} FROM {table}").with_schema(repository.house).generate_rows()

        assert next(rows)["street"] == "Anystreet 1"
        with pytest.raises(StopIteration):
            next(rows)

    def test_joined_relationships(self, repository: PersonRepository, people: list[PersonModel]) -> None:
        models = (
            repository.query(
                "SELECT {p.fields}, {s.fields}, {h.fields} FROM {p.table} "
                "LEFT JOIN {s.table} ON s.id = p.spouse_id "
                "LEFT JOIN {h.table} ON h.id = p.home_id "
                "ORDER BY p.first_name"
            )
            .with_schema(repository.person, "p")
            .with_schema(repository.person, "s")
            .with_schema(repository.house, "h")
            .generate_models("p", {"s": "spouse", "h": "home"})
        )

        jane, john, mary = models
        assert isinstance(jane, PersonModel)
        assert isinstance(john, PersonModel)
        assert isinstance(mary, PersonModel)

        assert jane.spouse is not None
        assert jane.spouse.first_name == "John"
        assert jane.spouse is not john
        assert isinstance(jane.home, HouseModel)
        assert jane.home.street == "Anystreet 1"
        assert mary.spouse is None
        assert mary.home is None
