"""
Database configuration and error classification tests.
"""

import pytest

from surveyhub.core.config import (
    DatabaseConfig,
    Settings,
    build_database_url,
    create_database_config,
    validate_database_config,
)
from surveyhub.core.errors import (
    DatabaseConfigurationError,
    DatabaseConnectionError,
    DatabaseSchemaError,
    describe_initialization_error,
    is_retryable_error,
)


# ── Driver URLs ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("provider, url, expected", [
    ("postgres", "postgresql://u:p@db:5432/surveys", "postgresql+asyncpg://u:p@db:5432/surveys"),
    ("postgres", "postgres://u:p@db/surveys", "postgresql+asyncpg://u:p@db/surveys"),
    ("postgres", "postgresql+psycopg://u:p@db/surveys", "postgresql+psycopg://u:p@db/surveys"),
    ("sqlite", "sqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
    ("sqlite", "./local.db", "sqlite+aiosqlite:///./local.db"),
    ("sqlite", "", ""),
])
def test_build_database_url(provider, url, expected):
    assert build_database_url(provider, url) == expected


# ── create / validate ───────────────────────────────────────────────────────

def test_create_database_config_for_sqlite():
    config = create_database_config(Settings(database_provider="SQLite", database_url="./local.db"))

    assert config.provider == "sqlite"
    assert config.url == "sqlite+aiosqlite:///./local.db"
    assert config.create_schema is True


def test_create_database_config_for_postgres_skips_schema_bootstrap():
    config = create_database_config(Settings(database_provider="postgres", database_url="postgresql://db/s"))
    assert config.create_schema is False


def test_unknown_provider_is_rejected():
    with pytest.raises(DatabaseConfigurationError, match="Unknown database provider: mongo"):
        create_database_config(Settings(database_provider="mongo", database_url="x"))


def test_missing_url_is_rejected():
    with pytest.raises(DatabaseConfigurationError, match="configuration is required for provider postgres"):
        validate_database_config(DatabaseConfig(provider="postgres", url=""))


def test_probe_timeout_must_be_positive():
    with pytest.raises(ValueError):
        DatabaseConfig(provider="sqlite", url="x", probe_timeout_seconds=0)


# ── Error classification ────────────────────────────────────────────────────

@pytest.mark.parametrize("error, retryable", [
    (DatabaseConnectionError("Connection test timeout"), True),
    (ConnectionRefusedError("refused"), True),
    (DatabaseSchemaError("Database tables not found. Please run the migrations."), False),
    (DatabaseConfigurationError("Unknown database provider: mongo"), False),
    (RuntimeError("Database tables not found"), False),
    (RuntimeError("Database URL configuration is required for provider sqlite"), False),
])
def test_is_retryable_error(error, retryable):
    assert is_retryable_error(error) is retryable


@pytest.mark.parametrize("error, cause", [
    (DatabaseSchemaError("Database tables not found"), "Database not set up"),
    (DatabaseConfigurationError("Unknown database provider: mongo"), "Database configuration is invalid"),
    (DatabaseConnectionError("Connection test timeout"), "Connection timeout"),
    (TimeoutError(), "Connection timeout"),
    (RuntimeError("boom"), "Database unavailable"),
])
def test_describe_initialization_error(error, cause):
    assert describe_initialization_error(error).startswith(cause)
