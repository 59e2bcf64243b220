"""
Failure description — structured error information for the failure track.

Every rejection the depot can produce has its own ErrorCode so the HTTP layer
can answer with a distinct status and the caller can render an actionable
message from the attached context (attempted issuer, compared CRL numbers...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Any


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    Grouped the way the HTTP layer maps them:
    - Input errors: the uploaded or stored bytes are not usable PKI objects.
    - Rejections: well-formed input that the publication workflow refuses.
    - Lookup errors: the requested object or key is not served.
    - Server errors: storage or unexpected technical failures.
    """

    # --- Input errors ---
    MALFORMED_PEM = "MALFORMED_PEM"
    """PEM delimiters missing or base64 body undecodable (→ 400)."""

    MALFORMED_DER = "MALFORMED_DER"
    """Bytes are not a decodable ASN.1 DER structure (→ 400)."""

    UNSUPPORTED_OBJECT_TYPE = "UNSUPPORTED_OBJECT_TYPE"
    """DER decodes but is not the certificate/CRL that was expected (→ 422)."""

    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    """Request body is not a text/* PEM upload (→ 415)."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Invalid request parameters, e.g. an unknown key prefix (→ 400)."""

    # --- Publication rejections ---
    ISSUER_NOT_FOUND = "ISSUER_NOT_FOUND"
    """No stored CA certificate matches the CRL's AKI or issuer name (→ 400)."""

    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    """The CRL signature does not verify against the resolved issuer (→ 400)."""

    STALE_VERSION = "STALE_VERSION"
    """The uploaded CRL is not newer than the stored one (→ 409)."""

    # --- Lookup errors ---
    NOT_FOUND = "NOT_FOUND"
    """The requested object does not exist (→ 404)."""

    # --- Server errors ---
    STORAGE_ERROR = "STORAGE_ERROR"
    """Object store read/write failure (→ 500)."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Unexpected/unclassified failures (→ 500)."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor: error code, message, optional exception,
    optional diagnostic context and a timestamp.

    >>> desc = FailureDescription(ErrorCode.STALE_VERSION, "CRL is not newer")
    >>> desc.code
    <ErrorCode.STALE_VERSION: 'STALE_VERSION'>
    >>> desc.context
    {}
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def create(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> FailureDescription:
        """Factory accepting an optional context mapping."""
        return FailureDescription(
            code=code,
            message=message,
            exception=exception,
            context=dict(context or {}),
        )
