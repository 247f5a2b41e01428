"""
Access token sources for database managed identity authentication.

Two token sources implement the same TokenSource protocol:
    - OverrideTokenSource: returns a token supplied out of band through
      runtime configuration (e.g., an administrator posting a short-lived
      token when configuring a hosted instance)
    - DefaultCredentialTokenSource: asks azure-identity's credential chain
      (managed identity, environment variables, Azure CLI, etc.)

CredentialProvider picks between them by a straight precedence rule: a
non-empty override token always wins and the credential chain is never
contacted.

Example:
    >>> provider = CredentialProvider()
    >>> token = await provider.acquire_token([MYSQL_DATABASE_SCOPE])
    >>> token = await provider.acquire_token(
    ...     [MYSQL_DATABASE_SCOPE], override_token="eyJ0eXAi..."
    ... )
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Sequence

from azure.core.exceptions import ClientAuthenticationError
from azure.identity.aio import DefaultAzureCredential

from querygate.errors.exceptions import CredentialAcquisitionError
from querygate.types import DatabaseType, TokenSource

logger = logging.getLogger(__name__)


# Azure AD scopes for database access tokens
MSSQL_DATABASE_SCOPE = "https://database.windows.net/.default"
MYSQL_DATABASE_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"
POSTGRESQL_DATABASE_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"

DATABASE_SCOPES: dict[DatabaseType, tuple[str, ...]] = {
    DatabaseType.MSSQL: (MSSQL_DATABASE_SCOPE,),
    DatabaseType.MYSQL: (MYSQL_DATABASE_SCOPE,),
    DatabaseType.POSTGRESQL: (POSTGRESQL_DATABASE_SCOPE,),
}

# Override tokens carry no expiry of their own
OVERRIDE_TOKEN_EXPIRY = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True)
class CredentialToken:
    """
    Access token with its expiry.

    Attributes:
        value: The access token string
        expires_on: UTC timestamp when the token expires
    """

    value: str
    expires_on: datetime

    def __repr__(self) -> str:
        # Never expose the token value in reprs or logs
        return f"CredentialToken(expires_on={self.expires_on.isoformat()})"


def _to_datetime(expires_on: int | float | datetime) -> datetime:
    # azure-identity returns expires_on as a Unix timestamp
    if isinstance(expires_on, datetime):
        return expires_on
    return datetime.fromtimestamp(expires_on, UTC)


class OverrideTokenSource:
    """Token source returning a preconfigured token verbatim."""

    def __init__(self, token: str):
        if not token:
            raise ValueError("Override token must be non-empty")
        self._token = token

    async def get_token(self, scopes: Sequence[str]) -> CredentialToken:
        logger.debug(
            "Using configured override access token",
            extra={"resource": " ".join(scopes)},
        )
        return CredentialToken(value=self._token, expires_on=OVERRIDE_TOKEN_EXPIRY)


class DefaultCredentialTokenSource:
    """
    Token source backed by an azure-identity async credential.

    The credential is created lazily so that constructing the source never
    touches the environment. Any object with an async
    ``get_token(*scopes)`` returning an AccessToken can be injected.
    """

    def __init__(self, credential=None):
        self._credential = credential
        self._owns_credential = credential is None

    def _get_credential(self):
        if self._credential is None:
            logger.info("Using DefaultAzureCredential (managed identity, env vars, etc.)")
            self._credential = DefaultAzureCredential()
        return self._credential

    async def get_token(self, scopes: Sequence[str]) -> CredentialToken:
        """
        Acquire a token from the credential chain.

        Raises:
            CredentialAcquisitionError: If no credential in the chain can
                issue a token
        """
        credential = self._get_credential()
        try:
            access_token = await credential.get_token(*scopes)
        except ClientAuthenticationError as e:
            raise CredentialAcquisitionError(
                "Failed to retrieve a managed identity access token using "
                "DefaultAzureCredential",
                cause=e,
                context={"scopes": list(scopes)},
            ) from e
        except Exception as e:
            raise CredentialAcquisitionError(
                f"Unexpected error acquiring access token: {type(e).__name__}",
                cause=e,
                context={"scopes": list(scopes)},
            ) from e

        token = CredentialToken(
            value=access_token.token,
            expires_on=_to_datetime(access_token.expires_on),
        )
        logger.debug(
            "Acquired token from default credential chain",
            extra={"resource": " ".join(scopes)},
        )
        return token

    async def close(self) -> None:
        if self._owns_credential and self._credential is not None:
            await self._credential.close()
            self._credential = None


class CredentialProvider:
    """
    Resolve access tokens by precedence.

    1. Override token (if non-empty) - returned without contacting any backend
    2. Default token source (credential chain)

    Nothing is cached here; wrap the default source in a CachingTokenSource
    to reuse tokens across calls.
    """

    def __init__(self, default_source: TokenSource | None = None):
        self._default_source = default_source or DefaultCredentialTokenSource()

    @property
    def default_source(self) -> TokenSource:
        return self._default_source

    def select_source(self, override_token: str | None = None) -> TokenSource:
        if override_token:
            return OverrideTokenSource(override_token)
        return self._default_source

    async def acquire_token(
        self,
        scopes: Sequence[str],
        override_token: str | None = None,
    ) -> CredentialToken:
        """
        Get an access token for the scopes.

        Args:
            scopes: OAuth scopes for the database resource
            override_token: Token set through runtime configuration, if any

        Returns:
            CredentialToken

        Raises:
            CredentialAcquisitionError: If the credential chain fails
        """
        return await self.select_source(override_token).get_token(scopes)

    async def close(self) -> None:
        close = getattr(self._default_source, "close", None)
        if close is not None:
            await close()


__all__ = [
    "MSSQL_DATABASE_SCOPE",
    "MYSQL_DATABASE_SCOPE",
    "POSTGRESQL_DATABASE_SCOPE",
    "DATABASE_SCOPES",
    "OVERRIDE_TOKEN_EXPIRY",
    "CredentialToken",
    "OverrideTokenSource",
    "DefaultCredentialTokenSource",
    "CredentialProvider",
]
