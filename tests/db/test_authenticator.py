"""Tests for ConnectionAuthenticator token injection."""

import pytest

from querygate.auth.credentials import (
    MSSQL_DATABASE_SCOPE,
    MYSQL_DATABASE_SCOPE,
    CredentialProvider,
)
from querygate.db.authenticator import ConnectionAuthenticator
from querygate.db.connection_string import PASSWORD_KEYS, ConnectionString, normalize_key
from querygate.errors.exceptions import CredentialAcquisitionError
from querygate.types import DatabaseType
from conftest import FakeConnection


def _connection(connection_string):
    return FakeConnection(connection_string, script=[None], log=[])


def _password_entries(connection_string):
    return [
        value
        for key, value in ConnectionString.parse(connection_string).pairs
        if normalize_key(key) in PASSWORD_KEYS
    ]


@pytest.fixture
def authenticator(token_source):
    return ConnectionAuthenticator(
        CredentialProvider(default_source=token_source), DatabaseType.MYSQL
    )


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_user_and_password_left_untouched(self, authenticator, token_source):
        connection = _connection("Server=db;User=svc;Password=secret;")

        injected = await authenticator.authenticate(connection)

        assert injected is False
        assert token_source.calls == []
        assert connection.connection_string == "Server=db;User=svc;Password=secret;"

    @pytest.mark.asyncio
    async def test_user_without_password_gets_token(self, authenticator, token_source):
        connection = _connection("Server=db;User=svc;")

        injected = await authenticator.authenticate(connection)

        assert injected is True
        assert token_source.calls == [(MYSQL_DATABASE_SCOPE,)]
        assert _password_entries(connection.connection_string) == ["token-1"]

    @pytest.mark.asyncio
    async def test_authenticating_twice_keeps_latest_token(self, authenticator, token_source):
        connection = _connection("Server=db;User=svc;")

        await authenticator.authenticate(connection)
        await authenticator.authenticate(connection)

        assert len(token_source.calls) == 2
        assert _password_entries(connection.connection_string) == ["token-2"]

    @pytest.mark.asyncio
    async def test_override_token_used_without_chain(self, authenticator, token_source):
        connection = _connection("Server=db;User=svc;")

        await authenticator.authenticate(connection, override_token="configured")

        assert token_source.calls == []
        assert _password_entries(connection.connection_string) == ["configured"]

    @pytest.mark.asyncio
    async def test_explicit_auth_method_left_untouched(self, authenticator, token_source):
        connection = _connection("Server=db;User=svc;Authentication=Kerberos;")
        assert await authenticator.authenticate(connection) is False
        assert token_source.calls == []

    @pytest.mark.asyncio
    async def test_descriptor_argument_is_honored(self, authenticator, token_source):
        connection = _connection("Server=db;User=svc;")
        descriptor = authenticator.inspect(connection)

        await authenticator.authenticate(connection, descriptor)

        assert len(token_source.calls) == 1

    @pytest.mark.asyncio
    async def test_credential_failure_propagates(self):
        class FailingSource:
            async def get_token(self, scopes):
                raise CredentialAcquisitionError("no identity")

        authenticator = ConnectionAuthenticator(
            CredentialProvider(default_source=FailingSource()), DatabaseType.MYSQL
        )
        connection = _connection("Server=db;User=svc;")

        with pytest.raises(CredentialAcquisitionError):
            await authenticator.authenticate(connection)
        assert connection.connection_string == "Server=db;User=svc;"


class TestEngineRules:

    @pytest.mark.asyncio
    async def test_mssql_injects_only_without_credentials(self, token_source):
        authenticator = ConnectionAuthenticator(
            CredentialProvider(default_source=token_source), DatabaseType.MSSQL
        )

        with_user = _connection("Server=db;User ID=svc;")
        assert await authenticator.authenticate(with_user) is False

        bare = _connection("Server=db;Database=app;")
        assert await authenticator.authenticate(bare) is True
        assert token_source.calls == [(MSSQL_DATABASE_SCOPE,)]

    @pytest.mark.asyncio
    async def test_postgres_injects_without_password(self, token_source):
        authenticator = ConnectionAuthenticator(
            CredentialProvider(default_source=token_source), "postgresql"
        )
        connection = _connection("Host=db;Username=svc;")

        assert await authenticator.authenticate(connection) is True
        assert _password_entries(connection.connection_string) == ["token-1"]
