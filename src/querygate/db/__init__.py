"""
Database connection handling and query execution.

Provides:
- Connection string inspection and token injection rules
- DatabaseConnection driver seam with an asyncpg adapter
- ConnectionAuthenticator for managed identity tokens
- QueryExecutor running queries with bounded retry
"""

from querygate.db.authenticator import ConnectionAuthenticator
from querygate.db.connection import (
    AsyncpgConnection,
    ConnectionFactory,
    DatabaseConnection,
)
from querygate.db.connection_string import (
    ConnectionDescriptor,
    ConnectionString,
    InjectionRule,
    inspect,
)
from querygate.db.executor import AttemptOutcome, QueryExecutor

__all__ = [
    # Connection strings
    "ConnectionDescriptor",
    "ConnectionString",
    "InjectionRule",
    "inspect",
    # Connections
    "AsyncpgConnection",
    "ConnectionFactory",
    "DatabaseConnection",
    # Authentication
    "ConnectionAuthenticator",
    # Execution
    "AttemptOutcome",
    "QueryExecutor",
]
