"""
Database connection seam.

The executor talks to drivers only through DatabaseConnection: a connection
string it may rewrite before opening, plus async open/execute/close. Driver
failures are translated into DatabaseError with the vendor code attached so
classification never depends on driver exception types.

AsyncpgConnection is the bundled PostgreSQL adapter. SQL Server and MySQL
drivers plug in by passing a connection_factory to the executor.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

import asyncpg

from querygate.db.connection_string import (
    PASSWORD_KEYS,
    USER_KEYS,
    ConnectionString,
    normalize_key,
)
from querygate.errors.exceptions import DatabaseError

logger = logging.getLogger(__name__)

# SQLSTATEs used when asyncpg raises a non-server error
SQLSTATE_CONNECTION_FAILURE = "08006"
SQLSTATE_UNABLE_TO_CONNECT = "08001"
SQLSTATE_QUERY_CANCELED = "57014"

# Connection string keyword -> asyncpg.connect() argument
_ASYNCPG_KEYWORDS: dict[str, str] = {
    "host": "host",
    "server": "host",
    "datasource": "host",
    "port": "port",
    "database": "database",
    "dbname": "database",
    "initialcatalog": "database",
    "sslmode": "ssl",
    "ssl": "ssl",
    "timeout": "timeout",
    "connecttimeout": "timeout",
    "commandtimeout": "command_timeout",
}
_ASYNCPG_KEYWORDS.update({key: "user" for key in USER_KEYS})
_ASYNCPG_KEYWORDS.update({key: "password" for key in PASSWORD_KEYS})

_NUMERIC_ARGS = {"port": int, "timeout": float, "command_timeout": float}

# Npgsql / ADO.NET spellings of libpq sslmode values
_SSL_MODE_ALIASES = {
    "verifyca": "verify-ca",
    "verifyfull": "verify-full",
    "true": "require",
    "false": "disable",
}


class DatabaseConnection(ABC):
    """
    One physical connection, opened at most once.

    Attributes:
        connection_string: Connection string used by open(). The
            authenticator may replace it before the connection is opened.
        configured_connection_string: The string the connection was
            created with, never rewritten
    """

    def __init__(self, connection_string: str):
        self.connection_string = connection_string
        self._configured_connection_string = connection_string

    @property
    def configured_connection_string(self) -> str:
        return self._configured_connection_string

    @abstractmethod
    async def open(self) -> None:
        """Open the connection using the current connection_string."""

    @abstractmethod
    async def execute(self, sql_text: str, parameters: Sequence[Any] | None = None) -> Any:
        """Execute a statement and return the driver result."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call when never opened."""

    async def __aenter__(self) -> "DatabaseConnection":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


ConnectionFactory = Callable[[str], DatabaseConnection]


def normalize_ssl_mode(value: str) -> str:
    """Lowercase an sslmode value and map Npgsql forms such as VerifyFull."""
    mode = value.strip().lower().replace("_", "-")
    return _SSL_MODE_ALIASES.get(mode.replace("-", ""), mode)


def asyncpg_connect_kwargs(connection_string: str) -> dict[str, Any]:
    """
    Translate a ``key=value;`` connection string into asyncpg.connect() kwargs.

    Unknown keywords are ignored.
    """
    kwargs: dict[str, Any] = {}
    for key, value in ConnectionString.parse(connection_string).pairs:
        if not value:
            continue
        arg = _ASYNCPG_KEYWORDS.get(normalize_key(key))
        if arg is None:
            logger.debug("Ignoring unsupported connection keyword", extra={"keyword": key})
            continue
        if arg == "ssl":
            kwargs[arg] = normalize_ssl_mode(value)
            continue
        convert = _NUMERIC_ARGS.get(arg)
        kwargs[arg] = convert(value) if convert else value
    return kwargs


def _to_database_error(exc: Exception, operation: str) -> DatabaseError:
    # Server and connection-level errors (PostgresConnectionError and
    # ConnectionDoesNotExistError included) carry their own SQLSTATE. Other
    # client-side InterfaceErrors get no code and are never retried.
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate:
        code = sqlstate
    elif isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        code = SQLSTATE_UNABLE_TO_CONNECT if operation == "open" else SQLSTATE_QUERY_CANCELED
    elif isinstance(exc, OSError):
        code = SQLSTATE_UNABLE_TO_CONNECT if operation == "open" else SQLSTATE_CONNECTION_FAILURE
    else:
        code = None
    return DatabaseError(
        f"PostgreSQL {operation} failed: {type(exc).__name__}",
        code=code,
        cause=exc,
        context={"operation": operation},
    )


class AsyncpgConnection(DatabaseConnection):
    """PostgreSQL connection backed by asyncpg."""

    def __init__(self, connection_string: str, connect_timeout: float = 5.0):
        super().__init__(connection_string)
        self._connect_timeout = connect_timeout
        self._conn: asyncpg.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        kwargs = asyncpg_connect_kwargs(self.connection_string)
        kwargs.setdefault("timeout", self._connect_timeout)
        try:
            self._conn = await asyncpg.connect(**kwargs)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise _to_database_error(e, "open") from e

        logger.debug(
            "Opened PostgreSQL connection",
            extra={"host": kwargs.get("host"), "database": kwargs.get("database")},
        )

    async def execute(self, sql_text: str, parameters: Sequence[Any] | None = None) -> list:
        """Run a statement and return its rows as asyncpg Records."""
        if self._conn is None:
            await self.open()

        start_time = time.perf_counter()
        try:
            records = await self._conn.fetch(sql_text, *(parameters or ()))
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise _to_database_error(e, "execute") from e

        logger.debug(
            "Statement executed",
            extra={
                "row_count": len(records),
                "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
            },
        )
        return records

    async def close(self) -> None:
        if self._conn is None:
            return
        try:
            await self._conn.close()
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.warning("Error closing PostgreSQL connection: %s", str(e)[:100])
        finally:
            self._conn = None


__all__ = [
    "AsyncpgConnection",
    "ConnectionFactory",
    "DatabaseConnection",
    "asyncpg_connect_kwargs",
    "normalize_ssl_mode",
]
