"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from querygate.logging.context import get_log_context
from querygate.utils.json_serializers import json_serializer


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Redacts passwords and tokens embedded in connection strings.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation
        "correlation_id",
        "data_source",
        "duration_ms",
        # Errors
        "error_category",
        "error_message",
        "error_code",
        "error_type",
        "status_code",
        "sub_status",
        # Resilience
        "attempt",
        "max_attempts",
        "delay_seconds",
        # Query execution
        "database_type",
        "database",
        "host",
        "sql",
        "query_length",
        "row_count",
        # Auth
        "resource",
        "token_source",
        # Configuration
        "keyword",
        "data_source_count",
        "connection_string_updated",
        "access_token_configured",
    ]

    # Type mapping for numeric fields
    NUMERIC_FIELDS = {
        "duration_ms": float,
        "delay_seconds": float,
        "attempt": int,
        "max_attempts": int,
        "status_code": int,
        "query_length": int,
        "row_count": int,
        "data_source_count": int,
    }

    # Context fields copied from contextvars when the record does not set them
    CONTEXT_FIELDS = ["correlation_id", "data_source"]

    # Matches credential values inside key=value; connection strings
    SENSITIVE_PATTERN = re.compile(
        r"\b(password|pwd|access[ _]?token|token)(\s*=\s*)(\"[^\"]*\"|'[^']*'|[^;\s]*)",
        re.IGNORECASE,
    )

    def _sanitize(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.SENSITIVE_PATTERN.sub(r"\1\2[REDACTED]", value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        """Convert numeric fields to their expected type, or None if that fails."""
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    def _base_log_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
        }

    def _inject_context(self, log_entry: dict[str, Any]) -> None:
        log_context = get_log_context()
        for field in self.CONTEXT_FIELDS:
            if log_context[field]:
                log_entry[field] = log_context[field]

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = self._sanitize(self._ensure_type(field, value))

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": self._sanitize(str(exc_value)) if exc_value else None,
            "stacktrace": self._sanitize(self.formatException(record.exc_info)),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)
        self._inject_context(log_entry)

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        # Record extras win over context values
        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when stderr is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, use_colors: bool | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        color = self.COLORS.get(record.levelno, "")
        if not self._use_colors or not color:
            return level_name
        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        data_source = getattr(record, "data_source", None) or log_context.get("data_source")
        correlation_id = getattr(record, "correlation_id", None) or log_context.get(
            "correlation_id"
        )
        attempt = getattr(record, "attempt", None)
        max_attempts = getattr(record, "max_attempts", None)

        tags = []
        if data_source:
            tags.append(f"[{data_source}]")
        if correlation_id:
            tags.append(f"[{correlation_id[:8]}]")
        if attempt is not None and max_attempts is not None:
            tags.append(f"[attempt {attempt}/{max_attempts}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        log_context = get_log_context()

        prefix = " - ".join(
            [
                datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                self._format_level_name(record),
            ]
        )
        message = JSONFormatter.SENSITIVE_PATTERN.sub(r"\1\2[REDACTED]", record.getMessage())
        tags = self._build_tags(record, log_context)

        if tags:
            return f"{prefix} - {' '.join(tags)} {message}"
        return f"{prefix} - {message}"
