"""
Centralized error classification for database query failures.

Maps vendor error codes (SQL Server error numbers, MySQL errno values and
PostgreSQL SQLSTATEs) to transient or fatal categories so the same retry
executor works across database engines.
"""

import asyncio
from typing import Iterable

from querygate.errors.exceptions import error_code_of
from querygate.types import DatabaseType, ErrorCategory


# Transient vendor error codes per engine
TRANSIENT_ERROR_CODES: dict[DatabaseType, frozenset[str]] = {
    DatabaseType.MSSQL: frozenset(
        {
            "-2",  # Client-side command timeout
            "121",  # Semaphore timeout period has expired
            "1205",  # Deadlock victim
            "1222",  # Lock request time out period exceeded
            "4060",  # Cannot open database requested by the login
            "10053",  # Transport-level error (connection aborted)
            "10054",  # Connection forcibly closed by remote host
            "10060",  # Connection attempt timed out
            "10928",  # Resource ID limit reached
            "10929",  # Resource ID minimum guarantee not met
            "40197",  # Service error processing request
            "40501",  # Service busy
            "40540",  # Service encountered error
            "40613",  # Database unavailable
            "49918",  # Not enough resources to process request
            "49919",  # Too many create/update operations
            "49920",  # Too many operations in progress
        }
    ),
    DatabaseType.MYSQL: frozenset(
        {
            "1040",  # Too many connections
            "1042",  # Unable to get host name
            "1043",  # Bad handshake
            "1047",  # Unknown command
            "1053",  # Server shutdown in progress
            "1077",  # Normal shutdown
            "1078",  # Got signal, aborting
            "1079",  # Shutdown complete
            "1080",  # Forcing close of thread
            "1081",  # Can't create IP socket
            "1152",  # Aborted connection
            "1153",  # Packet bigger than max_allowed_packet
            "1154",  # Read error from connection pipe
            "1155",  # Error from fcntl()
            "1156",  # Packets out of order
            "1157",  # Couldn't uncompress communication packet
            "1158",  # Error reading communication packets
            "1159",  # Timeout reading communication packets
            "1160",  # Error writing communication packets
            "1161",  # Timeout writing communication packets
            "1205",  # Lock wait timeout exceeded
            "1213",  # Deadlock found
            "2002",  # Can't connect through socket
            "2003",  # Can't connect to server
            "2006",  # Server has gone away
            "2013",  # Lost connection during query
        }
    ),
    DatabaseType.POSTGRESQL: frozenset(
        {
            "08000",  # connection_exception
            "08001",  # sqlclient_unable_to_establish_sqlconnection
            "08003",  # connection_does_not_exist
            "08004",  # sqlserver_rejected_establishment_of_sqlconnection
            "08006",  # connection_failure
            "40001",  # serialization_failure
            "40P01",  # deadlock_detected
            "53000",  # insufficient_resources
            "53100",  # disk_full
            "53200",  # out_of_memory
            "53300",  # too_many_connections
            "55P03",  # lock_not_available
            "57014",  # query_canceled (statement timeout)
            "57P01",  # admin_shutdown
            "57P02",  # crash_shutdown
            "57P03",  # cannot_connect_now
        }
    ),
}


class DbErrorClassifier:
    """
    Classify database failures by vendor error code.

    Any code outside the configured transient set is fatal, as is any
    failure that is not a DatabaseError at all (credential errors,
    malformed connection strings, cancellation, handler bugs).
    """

    def __init__(self, transient_codes: Iterable[str | int]):
        self._transient_codes = frozenset(str(code).strip() for code in transient_codes)

    @classmethod
    def for_engine(cls, database_type: DatabaseType | str) -> "DbErrorClassifier":
        """Build a classifier with the built-in transient codes of an engine."""
        return cls(TRANSIENT_ERROR_CODES[DatabaseType(database_type)])

    @property
    def transient_codes(self) -> frozenset[str]:
        return self._transient_codes

    def classify_code(self, code: str | int | None) -> ErrorCategory:
        if code is None:
            return ErrorCategory.FATAL
        if str(code).strip() in self._transient_codes:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.FATAL

    def classify(self, error: BaseException | None) -> ErrorCategory:
        if isinstance(error, asyncio.CancelledError):
            return ErrorCategory.FATAL
        return self.classify_code(error_code_of(error))

    def is_transient(self, error: BaseException | None) -> bool:
        return self.classify(error) == ErrorCategory.TRANSIENT


__all__ = [
    "TRANSIENT_ERROR_CODES",
    "DbErrorClassifier",
]
