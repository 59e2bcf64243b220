"""
Integration test fixtures — PostgreSQL testcontainer and object table setup.

Provides a real PostgreSQL instance for the test session via testcontainers.
The object table is created through the store itself; each test starts from
an empty table.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from cert_depot.adapters.object_store import PsycopgObjectStore

TABLE = "pki_objects"


def _psycopg_dsn(container: PostgresContainer) -> str:
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def postgres_container() -> PostgresContainer:
    """Start a PostgreSQL container and create the object table once."""
    with PostgresContainer("postgres:16-alpine") as pg:
        result = PsycopgObjectStore(_psycopg_dsn(pg), TABLE).ensure_schema()
        assert result.is_success(), result
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and empty the object table before each test."""
    connection_url = _psycopg_dsn(postgres_container)
    with psycopg.connect(connection_url) as conn:
        conn.execute(f"TRUNCATE {TABLE}")
        conn.commit()
    return connection_url


@pytest.fixture()
def pg_store(dsn: str) -> PsycopgObjectStore:
    return PsycopgObjectStore(dsn, TABLE)
