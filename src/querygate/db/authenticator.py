"""
Managed identity authentication of outbound database connections.

When a connection string names no usable credential, an access token from
the credential provider is written into the connection string as its
password. Connections that already carry credentials are left untouched.
"""

import logging
from typing import Sequence

from querygate.auth.credentials import DATABASE_SCOPES, CredentialProvider
from querygate.db.connection import DatabaseConnection
from querygate.db.connection_string import (
    ConnectionDescriptor,
    ConnectionString,
    InjectionRule,
    describe,
)
from querygate.types import DatabaseType

logger = logging.getLogger(__name__)


class ConnectionAuthenticator:
    """
    Injects access tokens into connections that need them.

    Example:
        >>> authenticator = ConnectionAuthenticator(
        ...     CredentialProvider(), DatabaseType.MYSQL
        ... )
        >>> injected = await authenticator.authenticate(connection)
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        database_type: DatabaseType | str = DatabaseType.MYSQL,
        scopes: Sequence[str] | None = None,
    ):
        self.credential_provider = credential_provider
        self.database_type = DatabaseType(database_type)
        self.rule = InjectionRule.for_engine(self.database_type)
        self.scopes = tuple(scopes or DATABASE_SCOPES[self.database_type])

    def inspect(self, connection: DatabaseConnection) -> ConnectionDescriptor:
        parsed = ConnectionString.parse(connection.configured_connection_string)
        return describe(parsed, self.rule)

    async def authenticate(
        self,
        connection: DatabaseConnection,
        descriptor: ConnectionDescriptor | None = None,
        override_token: str | None = None,
    ) -> bool:
        """
        Set an access token as the connection's password when permitted.

        Calling this again on the same connection acquires a fresh token and
        replaces the previous one, leaving a single password entry.

        Args:
            connection: Connection to authenticate (not yet opened)
            descriptor: Inspection result for the connection string; computed
                when omitted
            override_token: Token configured at runtime; takes precedence
                over the credential chain

        Returns:
            True if a token was injected, False if the connection was left
            untouched

        Raises:
            CredentialAcquisitionError: If token acquisition fails
            MalformedConnectionStringError: If the connection string cannot
                be parsed
        """
        # Always rewrite from the configured string so repeated calls converge
        parsed = ConnectionString.parse(connection.configured_connection_string)
        if descriptor is None:
            descriptor = describe(parsed, self.rule)

        if not descriptor.permits_injection():
            logger.debug(
                "Connection carries its own credentials, skipping token injection",
                extra={"database_type": self.database_type.value},
            )
            return False

        token = await self.credential_provider.acquire_token(
            self.scopes, override_token=override_token
        )
        connection.connection_string = parsed.with_password(token.value).render()

        logger.debug(
            "Injected access token into connection",
            extra={
                "database_type": self.database_type.value,
                "token_source": "override" if override_token else "default",
            },
        )
        return True


__all__ = ["ConnectionAuthenticator"]
