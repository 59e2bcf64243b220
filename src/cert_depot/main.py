"""
Application entry point — wires dependencies and starts the HTTP server.

Composition root: creates the concrete object store and crypto provider
that the ASGI app hands to the pipeline.

This is the ONLY place where concrete adapter classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog for structured logging
  2. Load and validate configuration from environment
  3. Create the object store for the configured backend
  4. Start Uvicorn serving cert_depot.asgi:app
"""

from __future__ import annotations

import logging
import sys

import structlog

from cert_depot import __version__
from cert_depot.adapters.crypto import CryptographyProvider
from cert_depot.adapters.object_store import InMemoryObjectStore, PsycopgObjectStore
from cert_depot.config import AppSettings, StorageBackend
from cert_depot.domain.ports import ObjectStore


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console output; events below log_level are
    dropped by the filtering bound logger.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_store(settings: AppSettings) -> ObjectStore:
    """
    Instantiate the object store for the configured backend.

    The PostgreSQL store creates its table on first use; a failure to do so
    is fatal at startup.
    """
    storage = settings.storage
    if storage.backend is StorageBackend.MEMORY:
        return InMemoryObjectStore()

    assert storage.database is not None  # guaranteed by StorageSettings validation
    store = PsycopgObjectStore(dsn=storage.database.get_dsn(), table=storage.table)
    schema = store.ensure_schema()
    if schema.is_failure():
        failure = schema.error()
        raise RuntimeError(f"{failure.message}: {failure.exception}")
    return store


def create_crypto() -> CryptographyProvider:
    return CryptographyProvider()


def main() -> None:
    """Validate configuration and serve the ASGI app."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        backend=settings.storage.backend.value,
        host=settings.server.host,
        port=settings.server.port,
    )

    import uvicorn

    uvicorn.run(
        "cert_depot.asgi:app",
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
