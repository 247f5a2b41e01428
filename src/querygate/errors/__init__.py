"""
Error classification and exception hierarchy.

Provides:
- QueryGateError hierarchy for typed exceptions
- ServiceError, the uniform failure surfaced to callers
- DbErrorClassifier mapping vendor error codes to transient/fatal
"""

from querygate.errors.classifiers import (
    # Constants
    TRANSIENT_ERROR_CODES,
    # Classes
    DbErrorClassifier,
)
from querygate.errors.exceptions import (
    CredentialAcquisitionError,
    DatabaseError,
    FatalDatabaseError,
    MalformedConnectionStringError,
    # Base classes
    QueryGateError,
    RetryExhaustedError,
    ServiceError,
    SubStatusCode,
    TransientDatabaseError,
    error_code_of,
)

__all__ = [
    # Base classes
    "QueryGateError",
    "ServiceError",
    "SubStatusCode",
    # Connection / credential errors
    "MalformedConnectionStringError",
    "CredentialAcquisitionError",
    # Database errors
    "DatabaseError",
    "TransientDatabaseError",
    "FatalDatabaseError",
    "RetryExhaustedError",
    "error_code_of",
    # Classifiers
    "TRANSIENT_ERROR_CODES",
    "DbErrorClassifier",
]
