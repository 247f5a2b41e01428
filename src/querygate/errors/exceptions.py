"""
Unified exception hierarchy for querygate.

Provides typed exceptions for connection string parsing, credential
acquisition and query execution, plus the ServiceError that is the only
failure surfaced to callers of the query executor.
"""

from enum import Enum
from http import HTTPStatus


class QueryGateError(Exception):
    """
    Base exception for all querygate errors.

    Attributes:
        message: Human-readable error description
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Connection / Credential Errors (Fatal)
# =============================================================================


class MalformedConnectionStringError(QueryGateError):
    """Connection string cannot be split into key/value pairs."""

    pass


class CredentialAcquisitionError(QueryGateError):
    """Identity backend failed to issue a token. Never retried."""

    pass


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(QueryGateError):
    """
    Error reported by a database driver.

    Retry decisions are made from ``code`` by an ErrorClassifier, not from
    the subclass; the subclasses exist so callers can raise an error that
    documents its expected classification.

    Attributes:
        code: Vendor error code (SQL Server number, MySQL errno, SQLSTATE)
    """

    def __init__(
        self,
        message: str,
        code: str | int | None = None,
        cause: BaseException | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.code = code


class TransientDatabaseError(DatabaseError):
    """Vendor error whose code is in the configured transient set."""

    pass


class FatalDatabaseError(DatabaseError):
    """Vendor error that will not succeed on retry."""

    pass


class RetryExhaustedError(QueryGateError):
    """All attempts consumed without success."""

    def __init__(self, attempts: int, last_error: BaseException | None):
        super().__init__(
            f"Query failed after {attempts} attempts",
            cause=last_error,
            context={"attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error


# =============================================================================
# Service Errors (surfaced to callers)
# =============================================================================


class SubStatusCode(str, Enum):
    """Finer-grained reason attached to a ServiceError."""

    DATABASE_OPERATION_FAILED = "DatabaseOperationFailed"
    DATA_SOURCE_NOT_FOUND = "DataSourceNotFound"
    UNEXPECTED_ERROR = "UnexpectedError"


class ServiceError(QueryGateError):
    """
    Externally visible failure of a query execution.

    Attributes:
        status_code: HTTP-style status code
        sub_status: Reason code for diagnostics
        inner: Underlying cause (also chained as __cause__)
    """

    def __init__(
        self,
        message: str,
        status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
        sub_status: SubStatusCode = SubStatusCode.DATABASE_OPERATION_FAILED,
        inner: BaseException | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause=inner, context=context)
        self.status_code = status_code
        self.sub_status = sub_status

    @property
    def inner(self) -> BaseException | None:
        return self.cause


def error_code_of(error: BaseException | None) -> str | None:
    """Return the vendor code of a database error as a string, else None."""
    if isinstance(error, DatabaseError) and error.code is not None:
        return str(error.code).strip()
    return None


__all__ = [
    "QueryGateError",
    "MalformedConnectionStringError",
    "CredentialAcquisitionError",
    "DatabaseError",
    "TransientDatabaseError",
    "FatalDatabaseError",
    "RetryExhaustedError",
    "SubStatusCode",
    "ServiceError",
    "error_code_of",
]
