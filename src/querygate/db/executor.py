"""
Query execution with managed identity authentication and retry.

Every call runs through the same state machine:

    Attempting(1) -> Success
                  -> Retrying(n + 1)   transient failure, attempts left
                  -> GivingUp          fatal failure, cancellation, or
                                       transient failure on the last attempt

Each attempt builds a fresh connection, injects an access token when the
connection string asks for one, executes the statement and hands the driver
result to the caller's result handler. The attempt's result is captured as an
AttemptOutcome; retry decisions and log events are driven from that outcome
alone.

Log events (INFO and above) for a call:
    - a failed attempt emits two: "Query attempt failed" plus one outcome
      event (retrying, retries exhausted, non-retryable, or cancelled)
    - a success after at least one failure emits one
    - a first-attempt success emits none
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Mapping, Sequence

from querygate.auth.credentials import CredentialProvider
from querygate.config.config import DataSourceConfig, RuntimeConfigProvider, RuntimeSettings
from querygate.db.authenticator import ConnectionAuthenticator
from querygate.db.connection import AsyncpgConnection, ConnectionFactory
from querygate.errors.classifiers import DbErrorClassifier
from querygate.errors.exceptions import (
    QueryGateError,
    RetryExhaustedError,
    ServiceError,
    SubStatusCode,
    error_code_of,
)
from querygate.logging.context import LogContext
from querygate.resilience.retry import RetryPolicy
from querygate.types import AttemptStatus, DatabaseType, ErrorCategory, ErrorClassifier

logger = logging.getLogger(__name__)

ResultHandler = Callable[[Any], Any]

DEFAULT_CONNECTION_FACTORIES: dict[DatabaseType, ConnectionFactory] = {
    DatabaseType.POSTGRESQL: AsyncpgConnection,
}


@dataclass(frozen=True)
class AttemptOutcome:
    """
    Result of one query attempt.

    Attributes:
        attempt: 1-indexed attempt number
        status: How the attempt ended
        error_code: Vendor error code of the failure, if any
        error: Exception raised by the attempt, if any
        value: Result handler's return value on success
    """

    attempt: int
    status: AttemptStatus
    error_code: str | None = None
    error: BaseException | None = None
    value: Any = None

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.SUCCESS

    @property
    def category(self) -> ErrorCategory | None:
        if self.status == AttemptStatus.SUCCESS:
            return None
        if self.status == AttemptStatus.TRANSIENT_FAILURE:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.FATAL


class QueryExecutor:
    """
    Executes queries against configured data sources with bounded retry.

    Example:
        >>> executor = QueryExecutor(RuntimeConfigProvider.from_file(path))
        >>> rows = await executor.execute_with_retry(
        ...     "SELECT id, name FROM books WHERE id = $1",
        ...     [42],
        ...     lambda records: [dict(r) for r in records],
        ... )
    """

    def __init__(
        self,
        config_provider: RuntimeConfigProvider,
        credential_provider: CredentialProvider | None = None,
        connection_factory: ConnectionFactory
        | Mapping[DatabaseType, ConnectionFactory]
        | None = None,
        classifier: ErrorClassifier | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            config_provider: Source of the runtime settings snapshot
            credential_provider: Token provider for managed identity; a
                DefaultAzureCredential-backed provider when omitted
            connection_factory: Callable building a connection from a
                connection string, or a mapping of such callables per
                database type (default: asyncpg for PostgreSQL)
            classifier: Error classifier overriding the per-engine default
            sleep: Awaitable used for backoff delays
        """
        self.config_provider = config_provider
        self.credential_provider = credential_provider or CredentialProvider()
        if connection_factory is None:
            connection_factory = DEFAULT_CONNECTION_FACTORIES
        self._connection_factory = connection_factory
        self._classifier = classifier
        self._sleep = sleep

    def _factory_for(self, source: DataSourceConfig) -> ConnectionFactory:
        if not isinstance(self._connection_factory, Mapping):
            return self._connection_factory
        factory = self._connection_factory.get(source.database_type)
        if factory is None:
            raise ServiceError(
                f"No connection factory registered for {source.database_type.value}",
                status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
                sub_status=SubStatusCode.UNEXPECTED_ERROR,
                context={"data_source": source.name},
            )
        return factory

    def _classifier_for(self, source: DataSourceConfig) -> ErrorClassifier:
        return self._classifier or DbErrorClassifier.for_engine(source.database_type)

    def _resolve(self, settings: RuntimeSettings, data_source: str | None) -> DataSourceConfig:
        source = settings.resolve_data_source(data_source)
        if source is None:
            raise ServiceError(
                f"Data source '{data_source}' is not configured",
                status_code=HTTPStatus.BAD_REQUEST,
                sub_status=SubStatusCode.DATA_SOURCE_NOT_FOUND,
                context={"data_source": data_source},
            )
        return source

    async def execute_with_retry(
        self,
        sql_text: str,
        parameters: Sequence[Any] | None,
        result_handler: ResultHandler,
        data_source: str | None = None,
    ) -> Any:
        """
        Execute a statement, retrying transient failures.

        Args:
            sql_text: Statement to execute
            parameters: Positional statement parameters
            result_handler: Called with the driver result of a successful
                execution; may be a coroutine function
            data_source: Data source name (default data source when empty)

        Returns:
            Whatever result_handler returns

        Raises:
            ServiceError: 400 for an unknown data source, 500 for any failure
                that ends the call
            asyncio.CancelledError: If the calling task is cancelled
        """
        settings = self.config_provider.snapshot()
        source = self._resolve(settings, data_source)
        policy = settings.retry
        factory = self._factory_for(source)

        with LogContext(data_source=source.name):
            if not settings.is_late_configured:
                logger.debug(
                    "Executing query",
                    extra={"sql": sql_text, "query_length": len(sql_text)},
                )

            attempt = 0
            while True:
                attempt += 1
                outcome = await self._run_attempt(
                    attempt, settings, source, factory, sql_text, parameters, result_handler
                )

                if outcome.succeeded:
                    if attempt > 1:
                        logger.info(
                            "Query succeeded after retry on attempt %d of %d",
                            attempt,
                            policy.max_attempts,
                            extra={
                                "attempt": attempt,
                                "max_attempts": policy.max_attempts,
                                "data_source": source.name,
                            },
                        )
                    return outcome.value

                self._log_attempt_failure(outcome, policy, source)

                if outcome.status == AttemptStatus.CANCELLED:
                    logger.warning(
                        "Query cancelled, not retrying",
                        extra={"attempt": attempt, "data_source": source.name},
                    )
                    raise outcome.error

                if outcome.status == AttemptStatus.FATAL_FAILURE:
                    self._raise_fatal(outcome, policy, source)

                if not policy.should_retry(ErrorCategory.TRANSIENT, attempt):
                    self._raise_exhausted(outcome, policy, source)

                delay = policy.get_delay(attempt)
                logger.warning(
                    "Transient error, retrying query in %.2fs",
                    delay,
                    extra={
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "delay_seconds": round(delay, 2),
                        "error_code": outcome.error_code,
                        "data_source": source.name,
                    },
                )
                await self._sleep(delay)

    async def _run_attempt(
        self,
        attempt: int,
        settings: RuntimeSettings,
        source: DataSourceConfig,
        factory: ConnectionFactory,
        sql_text: str,
        parameters: Sequence[Any] | None,
        result_handler: ResultHandler,
    ) -> AttemptOutcome:
        try:
            connection = factory(source.connection_string)
            authenticator = ConnectionAuthenticator(
                self.credential_provider, source.database_type
            )
            await authenticator.authenticate(
                connection, override_token=settings.access_token
            )

            async with connection:
                result = await connection.execute(sql_text, parameters)
                value = result_handler(result)
                if inspect.isawaitable(value):
                    value = await value

            return AttemptOutcome(attempt=attempt, status=AttemptStatus.SUCCESS, value=value)

        except asyncio.CancelledError as e:
            return AttemptOutcome(
                attempt=attempt, status=AttemptStatus.CANCELLED, error=e
            )
        except Exception as e:
            category = self._classifier_for(source).classify(e)
            status = (
                AttemptStatus.TRANSIENT_FAILURE
                if category == ErrorCategory.TRANSIENT
                else AttemptStatus.FATAL_FAILURE
            )
            return AttemptOutcome(
                attempt=attempt,
                status=status,
                error_code=error_code_of(e),
                error=e,
            )

    @staticmethod
    def _log_attempt_failure(
        outcome: AttemptOutcome, policy: RetryPolicy, source: DataSourceConfig
    ) -> None:
        logger.warning(
            "Query attempt failed: %s",
            str(outcome.error)[:200] or type(outcome.error).__name__,
            extra={
                "attempt": outcome.attempt,
                "max_attempts": policy.max_attempts,
                "error_code": outcome.error_code,
                "error_category": outcome.category.value,
                "error_type": type(outcome.error).__name__,
                "data_source": source.name,
            },
        )

    @staticmethod
    def _raise_fatal(
        outcome: AttemptOutcome, policy: RetryPolicy, source: DataSourceConfig
    ) -> None:
        logger.error(
            "Non-retryable error, query failed on attempt %d of %d",
            outcome.attempt,
            policy.max_attempts,
            extra={
                "attempt": outcome.attempt,
                "max_attempts": policy.max_attempts,
                "error_code": outcome.error_code,
                "error_category": ErrorCategory.FATAL.value,
                "data_source": source.name,
            },
        )
        sub_status = (
            SubStatusCode.DATABASE_OPERATION_FAILED
            if isinstance(outcome.error, QueryGateError)
            else SubStatusCode.UNEXPECTED_ERROR
        )
        raise ServiceError(
            "Database operation failed",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            sub_status=sub_status,
            inner=outcome.error,
            context={"attempts": outcome.attempt, "data_source": source.name},
        ) from outcome.error

    @staticmethod
    def _raise_exhausted(
        outcome: AttemptOutcome, policy: RetryPolicy, source: DataSourceConfig
    ) -> None:
        logger.error(
            "Max retries exhausted, query failed after %d attempts",
            outcome.attempt,
            extra={
                "attempt": outcome.attempt,
                "max_attempts": policy.max_attempts,
                "error_code": outcome.error_code,
                "error_category": ErrorCategory.TRANSIENT.value,
                "data_source": source.name,
            },
        )
        exhausted = RetryExhaustedError(outcome.attempt, outcome.error)
        raise ServiceError(
            "Database operation failed",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            sub_status=SubStatusCode.DATABASE_OPERATION_FAILED,
            inner=exhausted,
            context={"attempts": outcome.attempt, "data_source": source.name},
        ) from exhausted


__all__ = [
    "AttemptOutcome",
    "DEFAULT_CONNECTION_FACTORIES",
    "QueryExecutor",
    "ResultHandler",
]
