"""
Railway-Oriented Programming primitives used by the depot's workflows.

    from cert_depot.railway import Result, ErrorCode

    Result.success(pem_text).flat_map(extract_crl).flat_map(resolve_issuer)
"""

from cert_depot.railway.assertions import ResultAssertions
from cert_depot.railway.execution import (
    ExecutionContext,
    LoggingExecutionContext,
    NoOpExecutionContext,
)
from cert_depot.railway.failure import ErrorCode, FailureDescription
from cert_depot.railway.result import Failure, Result, Success

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]
