"""
Test assertions for Result values.

    def test_stale_upload_is_rejected():
        result = publish_crl(old_pem, store, crypto, settings)
        error = ResultAssertions.assert_failure(result, ErrorCode.STALE_VERSION)
        assert error.context["stored_crl_number"] == "5"
"""

from __future__ import annotations

from typing import Any, TypeVar

from cert_depot.railway.failure import ErrorCode, FailureDescription
from cert_depot.railway.result import Result

T = TypeVar("T")


class ResultAssertions:
    """Expressive test assertions for Result values."""

    @staticmethod
    def assert_success(result: Result[T], message: str = "") -> T:
        """Assert the Result is a Success and return the value."""
        suffix = f" — {message}" if message else ""
        assert result.is_success(), (
            f"Expected Success but got Failure("
            f"{result.error().code.value}: {result.error().message!r}){suffix}"
        )
        return result.value()

    @staticmethod
    def assert_failure(
        result: Result[T],
        expected_code: ErrorCode | None = None,
        message: str = "",
    ) -> FailureDescription:
        """Assert the Result is a Failure, optionally checking the error code."""
        suffix = f" — {message}" if message else ""
        assert result.is_failure(), (
            f"Expected Failure but got Success({result.value()!r}){suffix}"
        )
        error = result.error()
        if expected_code is not None:
            assert error.code == expected_code, (
                f"Expected error code {expected_code.value} "
                f"but got {error.code.value}: {error.message!r}{suffix}"
            )
        return error

    @staticmethod
    def assert_failure_message_contains(result: Result[T], substring: str) -> None:
        assert result.is_failure(), (
            f"Expected Failure but got Success({result.value()!r})"
        )
        error = result.error()
        assert substring.lower() in error.message.lower(), (
            f"Expected failure message to contain {substring!r} "
            f"but message was: {error.message!r}"
        )

    @staticmethod
    def assert_failure_context(result: Result[T], key: str, expected: Any) -> None:
        """Assert the failure carries ``key`` in its context with the given value."""
        error = ResultAssertions.assert_failure(result)
        assert key in error.context, (
            f"Expected context key {key!r}, context was: {error.context!r}"
        )
        assert error.context[key] == expected, (
            f"Expected context[{key!r}] == {expected!r} but got {error.context[key]!r}"
        )
