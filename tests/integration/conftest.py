import asyncio
import os
from collections.abc import Awaitable, Callable, Generator
from pathlib import Path
from typing import Any, TypeVar

import psycopg
import pytest

from app.config.settings import Settings
from app.database.connection import Database, build_conninfo

T = TypeVar("T")

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "app" / "database" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "compliance_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_schema(test_settings: Settings) -> None:
    try:
        with psycopg.connect(build_conninfo(test_settings)) as conn:
            conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    except psycopg.Error as e:
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )


@pytest.fixture
def db_conn(integration_schema: None, test_settings: Settings) -> Generator[psycopg.Connection[Any], None, None]:
    with psycopg.connect(build_conninfo(test_settings)) as conn:
        conn.execute("TRUNCATE pipelines CASCADE")
        conn.commit()
        yield conn


@pytest.fixture
def run_with_database(
    db_conn: psycopg.Connection[Any], test_settings: Settings
) -> Callable[[Callable[[Database], Awaitable[T]]], T]:
    """Run an async scenario against a freshly opened pool.

    Each scenario gets its own event loop, so the pool is opened and closed
    inside it.
    """

    def run(scenario: Callable[[Database], Awaitable[T]]) -> T:
        async def wrapper() -> T:
            database = Database(build_conninfo(test_settings), max_size=4)
            await database.open()
            try:
                return await scenario(database)
            finally:
                await database.close()

        return asyncio.run(wrapper())

    return run


@pytest.fixture
def second_conn(
    db_conn: psycopg.Connection[Any], test_settings: Settings
) -> Generator[psycopg.Connection[Any], None, None]:
    """A second session whose open transaction is rolled back at teardown."""
    conn = psycopg.connect(build_conninfo(test_settings))
    try:
        yield conn
    finally:
        conn.rollback()
        conn.close()
