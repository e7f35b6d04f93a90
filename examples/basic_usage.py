"""Basic sqla-records usage examples.

Demonstrates schema declaration, domain models, a repository,
batched relationship filling over dotted paths and raw queries
with schema placeholders.

Runs standalone against an in-memory SQLite database.
"""

from __future__ import annotations

import logging

import sqlalchemy as sa

from sqla_records import (
    Model,
    RelationshipDefinition,
    Repository,
    Schema,
    SchemaRegistry,
    SqlAlchemyConnection,
)


# ── 1. Tables and schemas ────────────────────────────────────────────

metadata = sa.MetaData()

sa.Table(
    "authors",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(100)),
)
sa.Table(
    "books",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("title", sa.String(200)),
    sa.Column("author_id", sa.Integer, sa.ForeignKey("authors.id")),
)


class Author(Model):
    __slots__ = ()

    @classmethod
    def create(cls, schema: Schema, name: str) -> Author:
        record = schema.create_record()
        record["name"] = name
        return cls(record)

    @property
    def name(self) -> str:
        return self.record["name"]

    @property
    def books(self) -> list[Book]:
        return self.record.get_related_models("books")  # type: ignore[return-value]


class Book(Model):
    __slots__ = ()

    @classmethod
    def create(cls, schema: Schema, title: str, author: Author) -> Book:
        record = schema.create_record()
        record["title"] = title
        record.associate("author", author)
        return cls(record)

    @property
    def title(self) -> str:
        return self.record["title"]

    @property
    def author(self) -> Author:
        return self.record.get_related_model("author")  # type: ignore[return-value]


registry = SchemaRegistry()
authors = registry.register(
    Schema(
        "author",
        table="authors",
        fields=("id", "name"),
        primary_key="id",
        relationships={"books": RelationshipDefinition("id", "book", "author_id")},
        model_factory=Author,
    )
)
books = registry.register(
    Schema(
        "book",
        table="books",
        fields=("id", "title", "author_id"),
        primary_key="id",
        relationships={"author": RelationshipDefinition("author_id", "author", "id")},
        model_factory=Book,
    )
)
# Resolve every declared relationship up front
registry.validate()


# ── 2. Repository ────────────────────────────────────────────────────


class LibraryRepository(Repository):
    def find_books(self) -> list[Book]:
        return self.find(books, {})  # type: ignore[return-value]

    def find_prolific_authors(self, minimum: int) -> list[Author]:
        return (
            self.query(
                "SELECT {a.fields} FROM {a.table} "
                "WHERE (SELECT COUNT(*) FROM books b WHERE b.author_id = a.id) >= :minimum"
            )
            .with_schema(authors, "a")
            .with_parameters({"minimum": minimum})
            .fetch_models("a")  # type: ignore[return-value]
        )


def main() -> None:
    logging.basicConfig(level=logging.DEBUG)

    engine = sa.create_engine("sqlite://")
    metadata.create_all(engine)
    repository = LibraryRepository(SqlAlchemyConnection(engine))

    ursula = Author.create(authors, "Ursula")
    terry = Author.create(authors, "Terry")
    repository.save(ursula)
    repository.save(terry)

    for title, author in (("Earthsea", ursula), ("The Dispossessed", ursula), ("Mort", terry)):
        repository.save(Book.create(books, title, author))

    # ── 3. Batched loading: one SELECT for authors, one for their books ──

    found = repository.find_books()
    repository.fill_relationships(found, ["author.books"])

    for book in found:
        print(f"{book.title} by {book.author.name} ({len(book.author.books)} books)")

    # ── 4. Raw SQL with schema placeholders ──────────────────────────

    print([author.name for author in repository.find_prolific_authors(2)])


if __name__ == "__main__":
    main()
