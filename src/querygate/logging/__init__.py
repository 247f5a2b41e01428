"""
Structured logging module.

Provides JSON logging with correlation IDs and context propagation.
"""

from querygate.logging.context import (
    LogContext,
    clear_log_context,
    generate_correlation_id,
    get_log_context,
    set_log_context,
)
from querygate.logging.formatters import ConsoleFormatter, JSONFormatter
from querygate.logging.setup import setup_logging

__all__ = [
    # Setup
    "setup_logging",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "LogContext",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "generate_correlation_id",
]
