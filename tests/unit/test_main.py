"""
Unit tests for the main module — composition root.

Tests verify structlog configuration and backend selection without making
real database connections.
"""

from __future__ import annotations

import pytest
import structlog

from cert_depot import main
from cert_depot.adapters.crypto import CryptographyProvider
from cert_depot.adapters.object_store import InMemoryObjectStore
from cert_depot.config import AppSettings, DatabaseSettings, StorageBackend, StorageSettings
from cert_depot.railway import ErrorCode, Result


class TestConfigureStructlog:
    """Verify structlog configuration function."""

    def test_configure_structlog_sets_log_level(self) -> None:
        """
        GIVEN log_level="WARNING"
        WHEN configure_structlog is called
        THEN structlog is configured (no exception raised).
        """
        main.configure_structlog("WARNING")
        assert structlog.get_logger() is not None

    def test_configure_structlog_invalid_level_falls_back(self) -> None:
        main.configure_structlog("NONEXISTENT")
        assert structlog.get_logger() is not None


class FakePostgresStore:
    created: list[tuple[str, str]] = []

    def __init__(self, dsn: str, table: str = "pki_objects") -> None:
        self.created.append((dsn, table))

    def ensure_schema(self) -> Result[str]:
        return Result.success("pki_objects")


class BrokenPostgresStore(FakePostgresStore):
    def ensure_schema(self) -> Result[str]:
        return Result.failure(
            ErrorCode.STORAGE_ERROR,
            "Failed to create the object table",
            exception=ConnectionError("connection refused"),
        )


def postgres_settings() -> AppSettings:
    return AppSettings(
        storage=StorageSettings(
            backend=StorageBackend.POSTGRES,
            database=DatabaseSettings(dsn="postgresql://u:p@db:5432/pki"),
            table="crl_objects",
        )
    )


class TestCreateStore:
    def test_memory_backend(self) -> None:
        settings = AppSettings(storage=StorageSettings(backend=StorageBackend.MEMORY))
        assert isinstance(main.create_store(settings), InMemoryObjectStore)

    def test_postgres_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """
        GIVEN the postgres backend with a DSN and custom table
        WHEN the store is created
        THEN PsycopgObjectStore receives both and the schema is ensured.
        """
        FakePostgresStore.created = []
        monkeypatch.setattr(main, "PsycopgObjectStore", FakePostgresStore)

        store = main.create_store(postgres_settings())

        assert isinstance(store, FakePostgresStore)
        assert FakePostgresStore.created == [("postgresql://u:p@db:5432/pki", "crl_objects")]

    def test_schema_failure_is_fatal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(main, "PsycopgObjectStore", BrokenPostgresStore)

        with pytest.raises(RuntimeError, match="connection refused"):
            main.create_store(postgres_settings())


def test_create_crypto() -> None:
    assert isinstance(main.create_crypto(), CryptographyProvider)
