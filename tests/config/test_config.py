"""Tests for runtime configuration loading and snapshots."""

import textwrap
import threading

import pytest

from querygate.config.config import (
    ACCESS_TOKEN_ENV_VAR,
    RuntimeConfigProvider,
    _expand_env_vars,
    load_settings,
    parse_settings,
)
from querygate.types import DatabaseType
from conftest import make_settings


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        textwrap.dedent(
            """
            data_sources:
              orders:
                database_type: mysql
                connection_string: "Server=${DB_HOST:-localhost};User=svc;"
              reports:
                database_type: postgresql
                connection_string: "Host=reports;Username=svc;"
            default_data_source: orders
            retry:
              max_retries: 3
              base_delay: 0.5
            """
        )
    )
    return path


class TestExpandEnvVars:

    def test_expands_set_variable(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.internal")
        assert _expand_env_vars({"a": ["${DB_HOST}"]}) == {"a": ["db.internal"]}

    def test_uses_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("DB_HOST", raising=False)
        assert _expand_env_vars("Server=${DB_HOST:-localhost};") == "Server=localhost;"

    def test_leaves_unset_variable_without_default(self, monkeypatch):
        monkeypatch.delenv("DB_HOST", raising=False)
        assert _expand_env_vars("${DB_HOST}") == "${DB_HOST}"

    def test_non_strings_untouched(self):
        assert _expand_env_vars({"n": 3, "b": True}) == {"n": 3, "b": True}


class TestLoadSettings:

    def test_loads_data_sources_and_retry(self, config_file, monkeypatch):
        monkeypatch.setenv("DB_HOST", "db.internal")
        monkeypatch.delenv(ACCESS_TOKEN_ENV_VAR, raising=False)

        settings = load_settings(config_file)

        orders = settings.resolve_data_source("orders")
        assert orders.database_type == DatabaseType.MYSQL
        assert orders.connection_string == "Server=db.internal;User=svc;"
        assert settings.resolve_data_source("reports").database_type == DatabaseType.POSTGRESQL
        assert settings.default_data_source == "orders"
        assert settings.retry.max_attempts == 4
        assert settings.retry.base_delay == 0.5
        assert settings.access_token is None
        assert settings.is_late_configured is False

    def test_access_token_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv(ACCESS_TOKEN_ENV_VAR, "env-token")
        assert load_settings(config_file).access_token == "env-token"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "missing.yaml")

    def test_missing_data_sources(self):
        with pytest.raises(ValueError, match="data_sources"):
            parse_settings({})

    def test_incomplete_data_source(self):
        with pytest.raises(ValueError, match="connection_string"):
            parse_settings({"data_sources": {"a": {"database_type": "mysql"}}})

    def test_unknown_database_type(self):
        with pytest.raises(ValueError, match="database_type must be one of"):
            parse_settings(
                {"data_sources": {"a": {"database_type": "oracle", "connection_string": "x=y;"}}}
            )

    def test_default_data_source_defaults_to_first(self):
        settings = parse_settings(
            {"data_sources": {"a": {"database_type": "MSSQL", "connection_string": "x=y;"}}}
        )
        assert settings.default_data_source == "a"
        assert settings.resolve_data_source("a").database_type == DatabaseType.MSSQL

    def test_unknown_default_data_source(self):
        with pytest.raises(ValueError, match="default_data_source"):
            parse_settings(
                {
                    "data_sources": {"a": {"database_type": "mysql", "connection_string": "x=y;"}},
                    "default_data_source": "b",
                }
            )


class TestRuntimeSettings:

    def test_resolve_empty_name_uses_default(self):
        settings = make_settings()
        assert settings.resolve_data_source(None).name == "main"
        assert settings.resolve_data_source("").name == "main"
        assert settings.resolve_data_source("other") is None

    def test_data_sources_read_only(self):
        settings = make_settings()
        with pytest.raises(TypeError):
            settings.data_sources["x"] = None

    def test_repr_hides_secrets(self):
        settings = make_settings(access_token="secret-token")
        assert "secret-token" not in repr(settings)
        assert "Password=secret" not in repr(settings)


class TestRuntimeConfigProvider:

    def test_configure_creates_new_snapshot(self):
        provider = RuntimeConfigProvider(make_settings())
        before = provider.snapshot()

        after = provider.configure(
            connection_string="Host=new;Username=svc;", access_token="tok"
        )

        assert provider.snapshot() is after
        assert before.is_late_configured is False
        assert before.resolve_data_source().connection_string.startswith("Server=db")
        assert after.is_late_configured is True
        assert after.access_token == "tok"
        assert after.resolve_data_source().connection_string == "Host=new;Username=svc;"

    def test_configure_token_only_keeps_connection_string(self):
        provider = RuntimeConfigProvider(make_settings())
        settings = provider.configure(access_token="tok")
        assert settings.resolve_data_source().connection_string.startswith("Server=db")

    def test_configure_unknown_data_source(self):
        provider = RuntimeConfigProvider(make_settings())
        with pytest.raises(ValueError):
            provider.configure(access_token="tok", data_source="missing")
        assert provider.snapshot().is_late_configured is False

    def test_load_settings_replaces_snapshot(self, config_file):
        provider = RuntimeConfigProvider(make_settings())
        provider.load_settings(config_file)
        assert provider.snapshot().default_data_source == "orders"

    def test_concurrent_configure(self):
        provider = RuntimeConfigProvider(make_settings())

        def worker(n):
            for i in range(50):
                provider.configure(access_token=f"{n}-{i}")
                assert provider.snapshot().is_late_configured

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert provider.snapshot().access_token.endswith("-49")
