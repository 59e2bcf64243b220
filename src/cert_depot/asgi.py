"""
FastAPI + Uvicorn ASGI application.

Serves the CRL publication and object inspection workflows over HTTP.
Handlers stay thin: each one runs a pipeline function in a worker thread
(the PKI engine and the storage adapters are blocking) inside a
LoggingExecutionContext, then maps the Result with build_fastapi_response.

Endpoints:
  GET  /health                     liveness; 503 when startup failed
  GET  /stats                      object counts and storage bytes per prefix
  GET  /objects?prefix=            stored object summaries, ordered by key
  GET  /objects/{key}/details      decoded certificate or CRL view
  GET  /crls?type=&status=         published CRLs with freshness status
  POST /crls                       publish a CRL (text/* PEM, or DER as
                                   application/pkix-crl or application/octet-stream)

Entry point for production: uvicorn cert_depot.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from cert_depot import __version__
from cert_depot.config import AppSettings, StorageSettings
from cert_depot.domain.models import ObjectDescription
from cert_depot.domain.ports import CryptoProvider, ObjectStore
from cert_depot.domain.serialization import to_jsonable
from cert_depot.main import configure_structlog, create_crypto, create_store
from cert_depot.pipeline import (
    collect_stats,
    describe_object,
    list_crls,
    list_objects,
    publish_crl,
    publish_crl_der,
)
from cert_depot.railway import ErrorCode, LoggingExecutionContext, Result
from cert_depot.railway.http_support import build_fastapi_response

# ─────────────────────── Global State ───────────────────────
# Set during app startup; tests assign them directly.

_store: ObjectStore | None = None
_crypto: CryptoProvider | None = None
_settings: StorageSettings | None = None
_error_message: str | None = None
log = structlog.get_logger()

_DER_MEDIA_TYPES = ("application/pkix-crl", "application/octet-stream")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI lifespan context manager — runs on startup and shutdown.

    Startup: load settings, create the object store and crypto provider.
    """
    global _store, _crypto, _settings, _error_message

    log.info("asgi.startup")

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)
    log.info(
        "asgi.startup_config",
        version=__version__,
        log_level=settings.log_level,
        backend=settings.storage.backend.value,
    )

    try:
        _store = create_store(settings)
        _crypto = create_crypto()
        _settings = settings.storage
    except Exception as e:
        _error_message = f"Failed to initialize object store: {e}"
        log.error("asgi.init_error", error=_error_message)
        raise

    log.info("asgi.startup_complete")

    yield

    log.info("asgi.shutdown_complete")


# ─────────────────────── FastAPI Application ───────────────────────

app = FastAPI(
    title="cert-depot",
    description="X.509 certificate and CRL distribution service",
    version=__version__,
    lifespan=lifespan,
)


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"status": "unavailable", "reason": _error_message or "Service not initialized"},
    )


def _description_body(description: ObjectDescription) -> dict[str, Any]:
    body: dict[str, Any] = to_jsonable(description)
    if description.crl is not None:
        now = datetime.now(UTC)
        body["crl"]["seconds_until_next_update"] = description.crl.seconds_until_next_update(now)
        body["crl"]["is_expired"] = description.crl.is_expired(now)
    return body


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe.

    Returns 200 once the object store is wired, 503 if startup failed or
    has not happened yet.
    """
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": _error_message},
        )
    if _store is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "reason": "object store not initialized"},
        )
    return JSONResponse(
        status_code=200,
        content={"status": "healthy", "version": __version__},
    )


@app.get("/stats")
async def stats() -> JSONResponse:
    if _store is None or _settings is None:
        return _unavailable()
    store, settings = _store, _settings

    result = await asyncio.to_thread(
        LoggingExecutionContext(operation="CollectStats").execute,
        lambda: collect_stats(store, settings),
    )
    return build_fastapi_response(result.map(to_jsonable))


@app.get("/objects")
async def objects(prefix: str = "") -> JSONResponse:
    if _store is None:
        return _unavailable()
    store = _store

    result = await asyncio.to_thread(
        LoggingExecutionContext(operation="ListObjects").execute,
        lambda: list_objects(prefix, store),
    )
    return build_fastapi_response(
        result.map(lambda found: {"prefix": prefix, "objects": to_jsonable(found)})
    )


@app.get("/objects/{key:path}/details")
async def object_details(key: str) -> JSONResponse:
    if _store is None or _crypto is None or _settings is None:
        return _unavailable()
    store, crypto, settings = _store, _crypto, _settings

    result = await asyncio.to_thread(
        LoggingExecutionContext(operation="DescribeObject").execute,
        lambda: describe_object(key, store, crypto, settings),
    )
    return build_fastapi_response(result.map(_description_body))


@app.get("/crls")
async def crls(
    kind: str | None = Query(default=None, alias="type"),
    status: str | None = None,
) -> JSONResponse:
    """Published CRLs, optionally filtered by type (full, delta) and status."""
    if _store is None or _settings is None:
        return _unavailable()
    store, settings = _store, _settings

    result = await asyncio.to_thread(
        LoggingExecutionContext(operation="ListCrls").execute,
        lambda: list_crls(store, settings, kind=kind, status=status),
    )
    return build_fastapi_response(result.map(lambda rows: {"crls": to_jsonable(rows)}))


@app.post("/crls")
async def upload_crl(request: Request) -> JSONResponse:
    """
    Publish a CRL sent as PEM text (text/*) or as DER
    (application/pkix-crl, application/octet-stream).

    Returns 201 with the publication receipt. Rejections keep their own
    status: 400 for malformed input, unknown issuer or bad signature,
    409 for a CRL that is not newer than the stored one, 415 for any
    other content type.
    """
    if _store is None or _crypto is None or _settings is None:
        return _unavailable()
    store, crypto, settings = _store, _crypto, _settings

    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    body = await request.body()

    if media_type in _DER_MEDIA_TYPES:
        log.info("upload.received", size=len(body), encoding="der")
        result = await asyncio.to_thread(
            LoggingExecutionContext(operation="PublishCrl").execute,
            lambda: publish_crl_der(body, store, crypto, settings),
        )
        return build_fastapi_response(result.map(to_jsonable), success_status=201)

    if not media_type.startswith("text/"):
        log.info("upload.rejected_media_type", content_type=content_type)
        return build_fastapi_response(
            Result.failure(
                ErrorCode.UNSUPPORTED_MEDIA_TYPE,
                "CRL uploads must be PEM text (text/*) or DER "
                "(application/pkix-crl, application/octet-stream)",
                context={"content_type": content_type},
            )
        )

    try:
        pem_text = body.decode("utf-8")
    except UnicodeDecodeError:
        return build_fastapi_response(
            Result.failure(ErrorCode.MALFORMED_PEM, "Upload body is not UTF-8 text")
        )

    log.info("upload.received", size=len(body), encoding="pem")
    result = await asyncio.to_thread(
        LoggingExecutionContext(operation="PublishCrl").execute,
        lambda: publish_crl(pem_text, store, crypto, settings),
    )
    return build_fastapi_response(result.map(to_jsonable), success_status=201)


if __name__ == "__main__":
    # For local testing: python -m uvicorn cert_depot.asgi:app --reload
    import uvicorn

    uvicorn.run(
        "cert_depot.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
