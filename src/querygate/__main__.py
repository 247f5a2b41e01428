"""Run a single query through the retrying executor. Use --help for usage."""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from querygate.auth.credentials import CredentialProvider
from querygate.config.config import RuntimeConfigProvider
from querygate.db.executor import QueryExecutor
from querygate.errors.exceptions import ServiceError
from querygate.logging.context import generate_correlation_id
from querygate.logging.setup import setup_logging
from querygate.utils.json_serializers import json_serializer

DEFAULT_CONFIG_FILE = Path("config.yaml")

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="querygate",
        description="Execute a SQL statement against a configured data source",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Query the default data source
    python -m querygate --config config.yaml "SELECT id, title FROM books"

    # Query a named data source with positional parameters
    python -m querygate --data-source orders --param 42 \\
        "SELECT * FROM orders WHERE id = $1"

    # Use a pre-issued access token instead of the credential chain
    QUERYGATE_ACCESS_TOKEN=eyJ0eXAi... python -m querygate "SELECT 1"
        """,
    )

    parser.add_argument("sql", help="SQL statement to execute")

    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.getenv("QUERYGATE_CONFIG", str(DEFAULT_CONFIG_FILE))),
        help="Path to config.yaml (default: QUERYGATE_CONFIG env var or ./config.yaml)",
    )

    parser.add_argument(
        "--data-source",
        default=None,
        help="Data source name (default: default_data_source from config)",
    )

    parser.add_argument(
        "--param",
        action="append",
        default=[],
        dest="params",
        help="Positional statement parameter; repeat for $1, $2, ...",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Console logging level (default: WARNING)",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Write JSON logs to this file as well",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path.cwd() / ".env",
        help="Environment file to load before reading config (default: ./.env)",
    )

    return parser.parse_args(argv)


def records_to_rows(records: Any) -> list[dict[str, Any]]:
    """Convert driver records (mapping-like rows) into plain dicts."""
    return [dict(record) for record in records or []]


async def run_query(args: argparse.Namespace) -> list[dict[str, Any]]:
    config_provider = RuntimeConfigProvider.from_file(args.config)
    credential_provider = CredentialProvider()
    executor = QueryExecutor(config_provider, credential_provider=credential_provider)
    try:
        return await executor.execute_with_retry(
            args.sql,
            args.params,
            records_to_rows,
            data_source=args.data_source,
        )
    finally:
        await credential_provider.close()


def main(argv: list[str] | None = None) -> int:
    global logger

    args = parse_args(argv)
    load_dotenv(args.env_file)

    logger = setup_logging(
        name="querygate",
        log_file=args.log_file,
        console_level=getattr(logging, args.log_level),
        correlation_id=generate_correlation_id(),
    )

    try:
        rows = asyncio.run(run_query(args))
    except (FileNotFoundError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        return 2
    except ServiceError as e:
        logger.error(
            "Query failed: %s",
            e.message,
            extra={"status_code": e.status_code, "sub_status": e.sub_status.value},
        )
        print(f"Error ({e.status_code.value} {e.sub_status.value}): {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        return 130

    print(json.dumps(rows, default=json_serializer, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
