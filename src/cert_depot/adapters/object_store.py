"""
Object store adapters — PostgreSQL and in-memory implementations of ObjectStore.

PostgreSQL layout (one table, name configurable):

    key          TEXT PRIMARY KEY
    data         BYTEA
    metadata     JSONB        string → string
    uploaded_at  TIMESTAMPTZ  set on every write

Writes are upserts: putting an existing key overwrites it. Each operation
opens its own connection; transient connection failures are retried with
tenacity before the error reaches the Result boundary.

No ORM — raw parameterized SQL, identifiers composed with psycopg.sql.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

import psycopg
import structlog
from psycopg import sql
from psycopg.types.json import Jsonb
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from cert_depot.domain.models import ObjectSummary, StoredObject
from cert_depot.railway import ErrorCode
from cert_depot.railway.result import Result

log = structlog.get_logger()

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    key         TEXT PRIMARY KEY,
    data        BYTEA NOT NULL,
    metadata    JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    uploaded_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

_SELECT_PREFIX = """
SELECT key, data, metadata, uploaded_at FROM {table}
WHERE starts_with(key, %s)
ORDER BY key
"""

_SELECT_SUMMARIES = """
SELECT key, octet_length(data), metadata, uploaded_at FROM {table}
WHERE starts_with(key, %s)
ORDER BY key
"""

_SELECT_KEY = "SELECT key, data, metadata, uploaded_at FROM {table} WHERE key = %s"

_UPSERT = """
INSERT INTO {table} (key, data, metadata, uploaded_at)
VALUES (%s, %s, %s, now())
ON CONFLICT (key) DO UPDATE
SET data = EXCLUDED.data, metadata = EXCLUDED.metadata, uploaded_at = EXCLUDED.uploaded_at
"""

_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=0.1, max=5),
    retry=retry_if_exception_type(psycopg.OperationalError),
    reraise=True,
)


def _not_found(key: str) -> Result[StoredObject]:
    return Result.failure(ErrorCode.NOT_FOUND, f"Object '{key}' not found", context={"key": key})


def _string_map(metadata: dict[str, Any] | None) -> dict[str, str]:
    return {str(k): str(v) for k, v in (metadata or {}).items()}


def _first_or_not_found(key: str, found: list[StoredObject]) -> Result[StoredObject]:
    return Result.success(found[0]) if found else _not_found(key)


class PsycopgObjectStore:
    """
    Persist objects to PostgreSQL.

    Implements the ObjectStore port. All exceptions are caught at this
    adapter boundary via Result.from_computation().
    """

    def __init__(self, dsn: str, table: str = "pki_objects") -> None:
        self._dsn = dsn
        self._table = sql.Identifier(table)

    def _query(self, template: str) -> sql.Composed:
        return sql.SQL(template).format(table=self._table)

    def ensure_schema(self) -> Result[str]:
        """Create the objects table if it does not exist yet."""
        return Result.from_computation(
            self._create_table,
            ErrorCode.STORAGE_ERROR,
            "Failed to create the object table",
        )

    def list(self, prefix: str) -> Result[list[StoredObject]]:
        return Result.from_computation(
            lambda: self._select_prefix(prefix),
            ErrorCode.STORAGE_ERROR,
            f"Failed to list objects under '{prefix}'",
        )

    def summaries(self, prefix: str) -> Result[list[ObjectSummary]]:
        return Result.from_computation(
            lambda: self._select_summaries(prefix),
            ErrorCode.STORAGE_ERROR,
            f"Failed to list objects under '{prefix}'",
        )

    def get(self, key: str) -> Result[StoredObject]:
        return Result.from_computation(
            lambda: self._select_key(key),
            ErrorCode.STORAGE_ERROR,
            f"Failed to read object '{key}'",
        ).flat_map(lambda found: _first_or_not_found(key, found))

    def put(self, key: str, data: bytes, metadata: dict[str, str]) -> Result[str]:
        return Result.from_computation(
            lambda: self._upsert(key, data, metadata),
            ErrorCode.STORAGE_ERROR,
            f"Failed to write object '{key}'",
        )

    @_transient
    def _create_table(self) -> str:
        with psycopg.connect(self._dsn) as conn, conn.cursor() as cur:
            cur.execute(self._query(_CREATE_TABLE))
        log.info("store.schema_ready", table=self._table.as_string())
        return self._table.as_string()

    @_transient
    def _select_prefix(self, prefix: str) -> list[StoredObject]:
        with psycopg.connect(self._dsn) as conn, conn.cursor() as cur:
            cur.execute(self._query(_SELECT_PREFIX), (prefix,))
            return [self._to_object(row) for row in cur.fetchall()]

    @_transient
    def _select_summaries(self, prefix: str) -> list[ObjectSummary]:
        with psycopg.connect(self._dsn) as conn, conn.cursor() as cur:
            cur.execute(self._query(_SELECT_SUMMARIES), (prefix,))
            return [
                ObjectSummary(
                    key=key, size=size, uploaded_at=uploaded_at, metadata=_string_map(metadata)
                )
                for key, size, metadata, uploaded_at in cur.fetchall()
            ]

    @_transient
    def _select_key(self, key: str) -> list[StoredObject]:
        with psycopg.connect(self._dsn) as conn, conn.cursor() as cur:
            cur.execute(self._query(_SELECT_KEY), (key,))
            return [self._to_object(row) for row in cur.fetchall()]

    @_transient
    def _upsert(self, key: str, data: bytes, metadata: dict[str, str]) -> str:
        with psycopg.connect(self._dsn) as conn, conn.transaction(), conn.cursor() as cur:
            cur.execute(self._query(_UPSERT), (key, data, Jsonb(metadata)))
        log.info("store.put", key=key, size=len(data))
        return key

    @staticmethod
    def _to_object(row: tuple[Any, ...]) -> StoredObject:
        key, data, metadata, uploaded_at = row
        return StoredObject(
            key=key,
            data=bytes(data),
            metadata=_string_map(metadata),
            uploaded_at=uploaded_at,
        )


class InMemoryObjectStore:
    """
    Dictionary-backed ObjectStore for local runs and tests.

    Thread-safe: the HTTP layer runs pipeline calls in worker threads.
    """

    def __init__(self, objects: dict[str, StoredObject] | None = None) -> None:
        self._objects: dict[str, StoredObject] = dict(objects or {})
        self._lock = threading.Lock()

    def list(self, prefix: str) -> Result[list[StoredObject]]:
        with self._lock:
            found = [obj for key, obj in sorted(self._objects.items()) if key.startswith(prefix)]
        return Result.success(found)

    def summaries(self, prefix: str) -> Result[list[ObjectSummary]]:
        return self.list(prefix).map(
            lambda objects: [
                ObjectSummary(
                    key=obj.key,
                    size=obj.size,
                    uploaded_at=obj.uploaded_at,
                    metadata=dict(obj.metadata),
                )
                for obj in objects
            ]
        )

    def get(self, key: str) -> Result[StoredObject]:
        with self._lock:
            found = self._objects.get(key)
        return Result.success(found) if found is not None else _not_found(key)

    def put(self, key: str, data: bytes, metadata: dict[str, str]) -> Result[str]:
        with self._lock:
            self._objects[key] = StoredObject(
                key=key,
                data=bytes(data),
                metadata=dict(metadata),
                uploaded_at=datetime.now(UTC),
            )
        log.info("store.put", key=key, size=len(data))
        return Result.success(key)
