from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any

import pytest
import sqlalchemy as sa

from sqla_records import SchemaRegistry, SqlAlchemyConnection, records_cache_clear

from .models import PersonRepository, RecordingConnection, create_registry, metadata


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["postgres", "mysql", "mariadb", "sqlite"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


def _container_dsn(container: Any, driver: str) -> str:
    if os.name == "nt":
        container.get_container_host_ip = lambda: "127.0.0.1"

    host = container.get_container_host_ip()
    port = container.get_exposed_port(container.port)

    return f"{driver}://{container.username}:{container.password}@{host}:{port}/{container.dbname}"


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    if db_backend == "sqlite":
        yield f"sqlite:///{tmp_path_factory.mktemp('db')}/records.db"
        return

    if db_backend == "postgres":
        from testcontainers.postgres import PostgresContainer

        container, driver = PostgresContainer(image="postgres:latest"), "postgresql+psycopg"
    else:
        from testcontainers.mysql import MySqlContainer

        image = "mysql:8.0" if db_backend == "mysql" else "mariadb:latest"
        container, driver = MySqlContainer(image=image), "mysql+pymysql"

    with container:
        yield _container_dsn(container, driver)


@pytest.fixture(scope="session")
def engine(db_config: str) -> Iterator[sa.Engine]:
    engine = sa.create_engine(db_config, echo=False)
    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def _create_tables(engine: sa.Engine) -> Iterator[None]:
    with engine.begin() as conn:
        metadata.create_all(conn)
    yield
    with engine.begin() as conn:
        metadata.drop_all(conn)


@pytest.fixture
def connection(engine: sa.Engine, _create_tables: None) -> Iterator[sa.Connection]:
    with engine.connect() as conn:
        trans = conn.begin()
        yield conn
        trans.rollback()


@pytest.fixture
def statements(connection: sa.Connection) -> Iterator[list[str]]:
    """SQL statements executed on the test connection, in order."""
    executed: list[str] = []

    def _record(conn: Any, cursor: Any, statement: str, *args: Any) -> None:
        executed.append(statement)

    sa.event.listen(connection, "before_cursor_execute", _record)
    yield executed
    sa.event.remove(connection, "before_cursor_execute", _record)


@pytest.fixture
def database(connection: sa.Connection) -> SqlAlchemyConnection:
    return SqlAlchemyConnection(connection)


@pytest.fixture
def registry() -> SchemaRegistry:
    return create_registry()


@pytest.fixture
def repository(database: SqlAlchemyConnection, registry: SchemaRegistry) -> PersonRepository:
    return PersonRepository(database, registry)


@pytest.fixture
def recording() -> RecordingConnection:
    return RecordingConnection()


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    records_cache_clear()
