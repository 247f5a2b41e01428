"""
pytest configuration for querygate tests.

Adds src directory to Python path for imports and provides shared fakes for
connections and token sources.
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Sequence

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from querygate.auth.credentials import CredentialToken  # noqa: E402
from querygate.config.config import (  # noqa: E402
    DataSourceConfig,
    RuntimeConfigProvider,
    RuntimeSettings,
)
from querygate.db.connection import DatabaseConnection  # noqa: E402
from querygate.logging.context import clear_log_context  # noqa: E402
from querygate.resilience.retry import RetryPolicy  # noqa: E402


class FakeConnection(DatabaseConnection):
    """
    In-memory connection whose execute() plays back a script.

    Each script entry is either an exception to raise or a value to return.
    The script is shared by every connection built from the same factory so
    it advances across retry attempts.
    """

    def __init__(self, connection_string: str, script: list, log: list):
        super().__init__(connection_string)
        self._script = script
        self._log = log
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        self.opened = True

    async def execute(self, sql_text: str, parameters: Sequence[Any] | None = None) -> Any:
        self._log.append(
            {"sql": sql_text, "parameters": parameters, "connection_string": self.connection_string}
        )
        step = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(step, BaseException):
            raise step
        return step

    async def close(self) -> None:
        self.closed = True


class FakeConnectionFactory:
    """Builds FakeConnections sharing one script and one execution log."""

    def __init__(self, *script):
        self.script = list(script)
        self.executions: list[dict] = []
        self.connections: list[FakeConnection] = []

    def __call__(self, connection_string: str) -> FakeConnection:
        connection = FakeConnection(connection_string, self.script, self.executions)
        self.connections.append(connection)
        return connection


class StubTokenSource:
    """TokenSource returning numbered tokens and counting calls."""

    def __init__(self, prefix: str = "token", lifetime: timedelta = timedelta(hours=1)):
        self.prefix = prefix
        self.lifetime = lifetime
        self.calls: list[tuple[str, ...]] = []

    async def get_token(self, scopes: Sequence[str]) -> CredentialToken:
        self.calls.append(tuple(scopes))
        return CredentialToken(
            value=f"{self.prefix}-{len(self.calls)}",
            expires_on=datetime.now(UTC) + self.lifetime,
        )


def make_settings(
    connection_string: str = "Server=db;Database=app;User=svc;Password=secret;",
    database_type: str = "postgresql",
    max_retries: int = 5,
    **overrides,
) -> RuntimeSettings:
    return RuntimeSettings(
        data_sources={
            "main": DataSourceConfig(
                name="main",
                database_type=database_type,
                connection_string=connection_string,
            )
        },
        default_data_source="main",
        retry=RetryPolicy(max_retries=max_retries, base_delay=0.0),
        **overrides,
    )


@pytest.fixture(autouse=True)
def clear_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def token_source():
    return StubTokenSource()


@pytest.fixture
def settings_provider():
    return RuntimeConfigProvider(make_settings())
