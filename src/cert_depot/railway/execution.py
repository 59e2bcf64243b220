"""
Execution contexts — separate WHAT a workflow does from HOW it is run.

The publication and inspection workflows are pure Result pipelines; the
context they run within adds timing and outcome logging without the stages
knowing about it.

    result = LoggingExecutionContext(operation="PublishCrl").execute(
        lambda: publish(pem_text)
    )
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, TypeVar, runtime_checkable

import structlog

from cert_depot.railway.failure import ErrorCode, FailureDescription
from cert_depot.railway.result import Failure, Result

T = TypeVar("T")
log = structlog.get_logger()


@runtime_checkable
class ExecutionContext(Protocol):
    """Anything with execute(computation) -> Result satisfies this protocol."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]: ...


class NoOpExecutionContext:
    """Passthrough context — runs the computation as is."""

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        return computation()


class LoggingExecutionContext:
    """
    Logs start, duration and outcome of a workflow run.

    An exception escaping the computation is logged and converted into a
    TECHNICAL_ERROR failure so callers always receive a Result.
    """

    def __init__(
        self,
        inner: ExecutionContext | None = None,
        operation: str = "unknown",
    ) -> None:
        self._inner = inner or NoOpExecutionContext()
        self._operation = operation

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        log.debug("execution.started", operation=self._operation)
        start = time.monotonic()

        try:
            result = self._inner.execute(computation)
        except Exception as e:
            elapsed = time.monotonic() - start
            log.error(
                "execution.crashed",
                operation=self._operation,
                elapsed_seconds=round(elapsed, 3),
                error=str(e),
            )
            return Failure(
                FailureDescription(
                    ErrorCode.TECHNICAL_ERROR,
                    f"Execution failed: {e}",
                    e,
                )
            )

        elapsed = time.monotonic() - start
        if result.is_success():
            log.info(
                "execution.completed",
                operation=self._operation,
                elapsed_seconds=round(elapsed, 3),
            )
        else:
            failure = result.error()
            log.info(
                "execution.rejected",
                operation=self._operation,
                elapsed_seconds=round(elapsed, 3),
                error_code=failure.code.value,
                message=failure.message,
            )
        return result
