"""
Core types and protocols used across modules.

This module provides base enums and protocol definitions shared by the
auth, errors and db packages to keep classification and token handling
consistent.
"""

from datetime import datetime
from enum import Enum
from typing import Protocol, Sequence


class ErrorCategory(Enum):
    """
    Classification of query failures for retry decisions.

    Categories:
        TRANSIENT: Failure expected to clear on retry
                   (e.g., timeouts, deadlocks, resource exhaustion)
        FATAL: Failure that will not change on retry
               (e.g., syntax errors, constraint violations, bad credentials,
               cancellation)
    """

    TRANSIENT = "transient"
    FATAL = "fatal"


class AttemptStatus(Enum):
    """Outcome of a single query attempt."""

    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    FATAL_FAILURE = "fatal_failure"
    CANCELLED = "cancelled"


class DatabaseType(str, Enum):
    """Database engines the executor knows how to authenticate and classify."""

    MSSQL = "mssql"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"


class ErrorClassifier(Protocol):
    """
    Protocol for error classification implementations.

    Each database engine supplies its own set of transient vendor codes;
    implementations map a structured code to a category.
    """

    def classify_code(self, code: str | int | None) -> ErrorCategory:
        """
        Classify a vendor error code.

        Args:
            code: Vendor error code, or None when the failure carried no code

        Returns:
            ErrorCategory for the code
        """
        ...

    def classify(self, error: BaseException | None) -> ErrorCategory:
        """
        Classify an arbitrary failure.

        Args:
            error: Exception raised during an attempt

        Returns:
            ErrorCategory, FATAL for anything that is not a database error
        """
        ...


class TokenSource(Protocol):
    """
    Protocol for access token sources.

    The configured override token and the default credential chain are both
    TokenSources; the credential provider picks one by precedence.
    """

    async def get_token(self, scopes: Sequence[str]) -> "CredentialTokenLike":
        """
        Get an access token for the specified scopes.

        Args:
            scopes: OAuth scopes required

        Returns:
            Token value with its expiry

        Raises:
            CredentialAcquisitionError: If token acquisition fails
        """
        ...


class CredentialTokenLike(Protocol):
    value: str
    expires_on: datetime


__all__ = [
    "AttemptStatus",
    "CredentialTokenLike",
    "DatabaseType",
    "ErrorCategory",
    "ErrorClassifier",
    "TokenSource",
]
