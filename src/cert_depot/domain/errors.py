"""
PKI error hierarchy.

Only structurally invalid input raises: bytes that are not DER, text without
a PEM block, or DER that is not the object the caller asked for. Absent but
well-formed data (no nextUpdate, no CRL number, unknown extensions) never
raises. Each exception carries the ErrorCode it maps to plus a context
mapping, which Result.attempt() copies onto the failure track.
"""

from __future__ import annotations

from typing import Any, ClassVar

from cert_depot.railway.failure import ErrorCode


class PkiError(Exception):
    """Base class for coded PKI errors."""

    error_code: ClassVar[ErrorCode] = ErrorCode.TECHNICAL_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context


class MalformedDER(PkiError):
    """The bytes are not a decodable ASN.1 DER structure."""

    error_code = ErrorCode.MALFORMED_DER


class MalformedPEM(PkiError):
    """PEM delimiters are missing or the base64 body does not decode."""

    error_code = ErrorCode.MALFORMED_PEM


class UnsupportedObjectType(PkiError):
    """The DER decodes, but not as the certificate or CRL that was expected."""

    error_code = ErrorCode.UNSUPPORTED_OBJECT_TYPE


class ExtensionDecodeError(PkiError):
    """
    A single extension could not be decoded.

    Never escapes a model builder: it is recorded on the extension entry
    (status=error) and decoding continues with the sibling extensions.
    """

    def __init__(self, oid: str, message: str) -> None:
        super().__init__(message, oid=oid)
        self.oid = oid
