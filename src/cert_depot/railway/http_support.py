"""
HTTP integration — ErrorCode→HTTP status mapping and response builders.

The mapping keeps malformed input, rejected uploads and missing objects on
distinct status codes, so a client can tell "fix your PEM" from "upload a
newer CRL" without parsing messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypeVar

from fastapi.responses import JSONResponse

from cert_depot.railway.failure import ErrorCode, FailureDescription
from cert_depot.railway.result import Result

T = TypeVar("T")


class HttpStatusMapper:
    """Maps ErrorCode enum values to HTTP status codes."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        ErrorCode.MALFORMED_PEM: 400,
        ErrorCode.MALFORMED_DER: 400,
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.ISSUER_NOT_FOUND: 400,
        ErrorCode.SIGNATURE_INVALID: 400,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.STALE_VERSION: 409,
        ErrorCode.UNSUPPORTED_MEDIA_TYPE: 415,
        ErrorCode.UNSUPPORTED_OBJECT_TYPE: 422,
        ErrorCode.STORAGE_ERROR: 500,
        ErrorCode.TECHNICAL_ERROR: 500,
    }

    @classmethod
    def map_error_code(cls, code: ErrorCode) -> int:
        return cls._CODE_TO_STATUS.get(code, 500)

    @classmethod
    def map_failure(cls, failure: FailureDescription) -> int:
        return cls.map_error_code(failure.code)


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """
    Standardized error response body.

        {
            "error_code": "STALE_VERSION",
            "message": "CRL is not newer than the stored version",
            "details": {"incoming_crl_number": "3", "stored_crl_number": "5"},
            "timestamp": "2026-02-17T10:30:00+00:00"
        }
    """

    error_code: str
    message: str
    timestamp: str
    details: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_failure(failure: FailureDescription) -> ErrorResponse:
        return ErrorResponse(
            error_code=failure.code.value,
            message=failure.message,
            timestamp=failure.timestamp.isoformat(),
            details={key: _jsonable(value) for key, value in failure.context.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return str(value)


def build_response(
    result: Result[T],
    success_status: int = 200,
    success_body: Any = None,
) -> tuple[Any, int]:
    """Build a framework-agnostic (body, status_code) tuple from a Result."""
    return result.either(
        on_success=lambda value: (
            success_body if success_body is not None else value,
            success_status,
        ),
        on_failure=lambda error: (
            ErrorResponse.from_failure(error).to_dict(),
            HttpStatusMapper.map_failure(error),
        ),
    )


def build_fastapi_response(
    result: Result[T],
    success_status: int = 200,
    success_body: Any = None,
) -> JSONResponse:
    """Build a FastAPI JSONResponse from a Result."""
    body, status = build_response(result, success_status, success_body)
    return JSONResponse(content=body, status_code=status)
