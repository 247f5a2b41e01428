"""Tests for JSON and console log formatters."""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from querygate.logging.context import LogContext, set_log_context
from querygate.logging.formatters import ConsoleFormatter, JSONFormatter


def _make_record(
    msg="test message",
    level=logging.INFO,
    name="test.logger",
    exc_info=None,
    **extras,
):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extras.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_formats_basic_json_with_required_fields(self):
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "test.logger"
        assert output["message"] == "test message"
        assert output["ts"].endswith("Z")

    def test_includes_context_fields(self):
        set_log_context(correlation_id="abc123", data_source="orders")
        output = json.loads(JSONFormatter().format(_make_record()))

        assert output["correlation_id"] == "abc123"
        assert output["data_source"] == "orders"

    def test_omits_empty_context_fields(self):
        output = json.loads(JSONFormatter().format(_make_record()))

        assert "correlation_id" not in output
        assert "data_source" not in output

    def test_record_extra_overrides_context(self):
        with LogContext(data_source="orders"):
            output = json.loads(
                JSONFormatter().format(_make_record(data_source="inventory"))
            )

        assert output["data_source"] == "inventory"

    def test_includes_retry_extras(self):
        record = _make_record(
            attempt=2, max_attempts=6, delay_seconds=4.0, error_code="1205"
        )
        output = json.loads(JSONFormatter().format(record))

        assert output["attempt"] == 2
        assert output["max_attempts"] == 6
        assert output["delay_seconds"] == 4.0
        assert output["error_code"] == "1205"

    def test_coerces_numeric_fields(self):
        output = json.loads(JSONFormatter().format(_make_record(attempt="3", row_count="x")))

        assert output["attempt"] == 3
        assert output["row_count"] is None

    def test_ignores_unknown_extras(self):
        output = json.loads(JSONFormatter().format(_make_record(unrelated="value")))
        assert "unrelated" not in output

    def test_source_location_only_for_debug_and_error(self):
        formatter = JSONFormatter()

        assert "file" not in json.loads(formatter.format(_make_record(level=logging.INFO)))
        assert json.loads(formatter.format(_make_record(level=logging.ERROR)))["file"] == "test.py:42"
        assert "file" in json.loads(formatter.format(_make_record(level=logging.DEBUG)))

    @pytest.mark.parametrize(
        "message",
        [
            "Server=db;User=svc;Password=hunter2;",
            "Server=db;pwd = hunter2",
            "AccessToken=hunter2;Database=app",
            "token='hunter2'",
            'Password="hunter2;still secret"',
        ],
    )
    def test_redacts_credentials_in_message(self, message):
        output = json.loads(JSONFormatter().format(_make_record(msg=message)))

        assert "hunter2" not in output["message"]
        assert "[REDACTED]" in output["message"]

    def test_redaction_keeps_other_pairs(self):
        output = json.loads(
            JSONFormatter().format(_make_record(msg="Server=db;Password=hunter2;Database=app"))
        )
        assert output["message"] == "Server=db;Password=[REDACTED];Database=app"

    def test_redacts_extras(self):
        record = _make_record(sql="CREATE USER x WITH PASSWORD = hunter2")
        output = json.loads(JSONFormatter().format(record))
        assert "hunter2" not in output["sql"]

    def test_includes_redacted_exception(self):
        try:
            raise ValueError("login failed for Password=hunter2")
        except ValueError:
            exc_info = sys.exc_info()

        output = json.loads(
            JSONFormatter().format(_make_record(level=logging.ERROR, exc_info=exc_info))
        )

        assert output["exception"]["type"] == "ValueError"
        assert "hunter2" not in output["exception"]["message"]
        assert "hunter2" not in output["exception"]["stacktrace"]
        assert "Traceback" in output["exception"]["stacktrace"]


class TestConsoleFormatter:

    def test_plain_message_without_tags(self):
        output = ConsoleFormatter(use_colors=False).format(_make_record())
        assert output.endswith(" - INFO - test message")

    def test_includes_data_source_and_short_correlation_id(self):
        set_log_context(correlation_id="0123456789abcdef", data_source="orders")
        output = ConsoleFormatter(use_colors=False).format(_make_record())

        assert "[orders] [01234567] test message" in output

    def test_includes_attempt_tag(self):
        output = ConsoleFormatter(use_colors=False).format(
            _make_record(attempt=2, max_attempts=6)
        )
        assert "[attempt 2/6]" in output

    def test_attempt_tag_requires_both_fields(self):
        output = ConsoleFormatter(use_colors=False).format(_make_record(attempt=2))
        assert "[attempt" not in output

    def test_colors_level_name(self):
        output = ConsoleFormatter(use_colors=True).format(_make_record(level=logging.ERROR))
        assert "\033[31mERROR\033[0m" in output

    def test_no_colors_when_disabled(self):
        output = ConsoleFormatter(use_colors=False).format(_make_record(level=logging.ERROR))
        assert "\033[" not in output

    def test_auto_colors_follow_stderr(self):
        with patch("querygate.logging.formatters.sys") as mock_sys:
            mock_sys.stdout.isatty.return_value = True
            mock_sys.stderr.isatty.return_value = False
            output = ConsoleFormatter().format(_make_record(level=logging.ERROR))

        assert "\033[" not in output

    def test_auto_colors_when_stderr_is_tty(self):
        with patch("querygate.logging.formatters.sys") as mock_sys:
            mock_sys.stdout.isatty.return_value = False
            mock_sys.stderr.isatty.return_value = True
            output = ConsoleFormatter().format(_make_record(level=logging.ERROR))

        assert "\033[31mERROR\033[0m" in output

    def test_redacts_credentials(self):
        output = ConsoleFormatter(use_colors=False).format(
            _make_record(msg="Server=db;Password=hunter2;")
        )
        assert "hunter2" not in output
