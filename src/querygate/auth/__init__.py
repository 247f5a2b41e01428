"""
Access token acquisition for database connections.

Provides:
- CredentialProvider choosing between an override token and the
  azure-identity credential chain
- TokenCache / CachingTokenSource for opt-in token reuse
"""

from querygate.auth.credentials import (
    DATABASE_SCOPES,
    MSSQL_DATABASE_SCOPE,
    MYSQL_DATABASE_SCOPE,
    POSTGRESQL_DATABASE_SCOPE,
    CredentialProvider,
    CredentialToken,
    DefaultCredentialTokenSource,
    OverrideTokenSource,
)
from querygate.auth.token_cache import (
    CachedToken,
    CachingTokenSource,
    TokenCache,
)

__all__ = [
    # Scopes
    "DATABASE_SCOPES",
    "MSSQL_DATABASE_SCOPE",
    "MYSQL_DATABASE_SCOPE",
    "POSTGRESQL_DATABASE_SCOPE",
    # Token sources
    "CredentialProvider",
    "CredentialToken",
    "DefaultCredentialTokenSource",
    "OverrideTokenSource",
    # Caching
    "CachedToken",
    "CachingTokenSource",
    "TokenCache",
]
