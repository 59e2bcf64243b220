"""
Result monad — the railway the publication workflow runs on.

A Result[T] is either Success(value: T) or Failure(error: FailureDescription).
Stages are chained with .flat_map(); the first failure short-circuits the rest.

    ┌─────────┐  flat_map  ┌─────────┐  flat_map  ┌──────────┐
    │ extract │──Success───│ resolve │──Success───│ publish  │──→ Result[T]
    └────┬────┘            └────┬────┘            └────┬─────┘
         │ Failure              │ Failure              │ Failure
         └──────────────────────┴──────────────────────┴──→ Result[T]

The PKI engine itself raises typed exceptions for malformed input;
Result.attempt() is the boundary that turns those into failures while
keeping each exception's own error code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from cert_depot.railway.failure import ErrorCode, FailureDescription

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


class Result(Generic[T]):
    """
    Railway-Oriented Programming Result monad.

        >>> Result.success(3).map(lambda n: n + 1).value()
        4

        >>> Result.failure(ErrorCode.NOT_FOUND, "no such key").is_failure()
        True
    """

    # ──────────────────────── Introspection ────────────────────────

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """Extract the success value. Raises ValueError on a Failure."""
        match self:
            case Success(v):
                return v
            case Failure(err):
                raise ValueError(f"Cannot get value from a Failure: {err.message}")
        raise TypeError("unreachable")  # pragma: no cover

    def error(self) -> FailureDescription:
        """Extract the failure description. Raises ValueError on a Success."""
        match self:
            case Failure(err):
                return err
            case Success(v):
                raise ValueError(f"Cannot get error from a Success: {v}")
        raise TypeError("unreachable")  # pragma: no cover

    # ──────────────────────── Transformations ────────────────────────

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        """Apply one of two functions depending on the track."""
        match self:
            case Success(v):
                return on_success(v)
            case Failure(err):
                return on_failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        """Transform the success value. Short-circuits on failure."""
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """
        Chain a Result-returning stage. Short-circuits on failure.

            extract_crl(pem).flat_map(resolve_issuer).flat_map(verify)
        """
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def ensure(
        self,
        predicate: Callable[[T], bool],
        error: FailureDescription | Callable[[T], FailureDescription],
    ) -> Result[T]:
        """
        Keep the success value only if it satisfies the predicate.

        The failure may be given up front or built from the rejected value,
        which lets rejections carry the context that made them fail.
        """

        def _check(v: T) -> Result[T]:
            if predicate(v):
                return Result.success(v)
            description = error(v) if callable(error) else error
            return Result.failure_from(description)

        return self.flat_map(_check)

    # ──────────────────────── Side Effects ────────────────────────

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run a side effect on the success value (logging, metrics)."""
        match self:
            case Success(v):
                action(v)
        return self

    # ──────────────────────── Static Factories ────────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure_from(error: FailureDescription) -> Result[T]:
        return Failure(error)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> Result[T]:
        """
        Create a failed Result.

            Result.failure(ErrorCode.STALE_VERSION, "CRL is not newer",
                           context={"incoming_crl_number": "4"})
        """
        return Failure(FailureDescription.create(code, message, exception, context))

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """
        Run a computation that may raise; any exception becomes a failure
        with the given code. Used at adapter boundaries (storage).
        """
        try:
            return Result.success(computation())
        except Exception as e:
            return Result.failure(error_code, error_message, e)

    @staticmethod
    def attempt(
        computation: Callable[[], T],
        fallback_code: ErrorCode = ErrorCode.TECHNICAL_ERROR,
    ) -> Result[T]:
        """
        Run a computation that may raise a coded exception.

        Exceptions exposing an ``error_code`` attribute (the PKI error
        hierarchy) keep their own code, message and ``context``; anything
        else is reported under ``fallback_code``. Distinct failures are never
        collapsed into one generic error.
        """
        try:
            return Result.success(computation())
        except Exception as e:
            code = getattr(e, "error_code", None)
            if not isinstance(code, ErrorCode):
                code = fallback_code
            context = getattr(e, "context", None)
            return Result.failure(
                code,
                str(e),
                e,
                context if isinstance(context, dict) else None,
            )


@dataclass(frozen=True, slots=True)
class Success(Result[T]):
    """The success track — wraps a value of type T."""

    _value: T

    def __init__(self, value: T) -> None:
        if value is None:
            raise TypeError("Success value must not be None")
        object.__setattr__(self, "_value", value)

    def __repr__(self) -> str:
        return f"Success({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Success):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("Success", self._value))


Success.__match_args__ = ("_value",)


@dataclass(frozen=True, slots=True)
class Failure(Result[T]):
    """The failure track — wraps a FailureDescription."""

    _error: FailureDescription

    def __init__(self, error: FailureDescription) -> None:
        if error is None:
            raise TypeError("Failure error must not be None")
        object.__setattr__(self, "_error", error)

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Failure):
            return (
                self._error.code == other._error.code
                and self._error.message == other._error.message
            )
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("Failure", self._error.code, self._error.message))


Failure.__match_args__ = ("_error",)
