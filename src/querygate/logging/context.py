"""Context variables for structured logging."""

import uuid
from contextvars import ContextVar

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_data_source: ContextVar[str] = ContextVar("data_source", default="")


def set_log_context(
    correlation_id: str | None = None,
    data_source: str | None = None,
) -> None:
    if correlation_id is not None:
        _correlation_id.set(correlation_id)
    if data_source is not None:
        _data_source.set(data_source)


def get_log_context() -> dict[str, str]:
    return {
        "correlation_id": _correlation_id.get(),
        "data_source": _data_source.get(),
    }


def clear_log_context() -> None:
    _correlation_id.set("")
    _data_source.set("")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(data_source="orders"):
            # All logs in this block carry data_source
            await executor.execute_with_retry(...)
    """

    def __init__(
        self,
        correlation_id: str | None = None,
        data_source: str | None = None,
    ):
        self.new_context = {
            "correlation_id": correlation_id,
            "data_source": data_source,
        }
        self.old_context: dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        set_log_context(**self.new_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(**self.old_context)
        return False
