from pydantic import BaseModel, Field
import os


from dotenv import load_dotenv
load_dotenv()

from surveyhub.core.errors import DatabaseConfigurationError

SUPPORTED_PROVIDERS = ("postgres", "sqlite")


class Settings(BaseModel):
    app_name: str = os.getenv("APP_NAME", "SurveyEngine")

    # Backend store
    database_provider: str = os.getenv("DATABASE_PROVIDER", "postgres")
    database_url: str = os.getenv("DATABASE_URL", "")
    database_max_retries: int = int(os.getenv("DATABASE_MAX_RETRIES", "3"))
    # Base delay for linear backoff between initialization attempts
    database_retry_delay_seconds: float = float(os.getenv("DATABASE_RETRY_DELAY_SECONDS", "60"))
    database_probe_timeout_seconds: float = float(os.getenv("DATABASE_PROBE_TIMEOUT_SECONDS", "10"))

    # Session reconciliation
    session_timeout_hours: float = float(os.getenv("SESSION_TIMEOUT_HOURS", "24"))
    session_cleanup_interval_minutes: float = float(os.getenv("SESSION_CLEANUP_INTERVAL_MINUTES", "60"))
    session_cleanup_batch_size: int = int(os.getenv("SESSION_CLEANUP_BATCH_SIZE", "100"))

    # Instance status automation
    instance_status_interval_minutes: float = float(os.getenv("INSTANCE_STATUS_INTERVAL_MINUTES", "30"))
    validation_settle_seconds: float = float(os.getenv("VALIDATION_SETTLE_SECONDS", "1"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = os.getenv("LOG_JSON", "false").lower() in {"1", "true", "yes", "on"}


class DatabaseConfig(BaseModel):
    provider: str
    url: str = ""
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    # Create missing tables before probing (sqlite only; postgres goes through alembic)
    create_schema: bool = False


def build_database_url(provider: str, url: str) -> str:
    """Rewrite a plain database URL so SQLAlchemy picks the async driver for the provider."""
    driver_map = {
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }
    driver = driver_map.get(provider.lower())
    if driver is None or not url:
        return url

    scheme, sep, rest = url.partition("://")
    if not sep:
        # Bare path for sqlite
        return f"{driver}:///{url}" if provider.lower() == "sqlite" else url
    if "+" in scheme:
        return url
    return f"{driver}://{rest}"


def create_database_config(source: Settings | None = None) -> DatabaseConfig:
    source = source or settings
    provider = (source.database_provider or "postgres").strip().lower()

    if provider not in SUPPORTED_PROVIDERS:
        raise DatabaseConfigurationError(
            f"Unknown database provider: {provider}. Currently supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    return DatabaseConfig(
        provider=provider,
        url=build_database_url(provider, source.database_url.strip()),
        probe_timeout_seconds=source.database_probe_timeout_seconds,
        create_schema=provider == "sqlite",
    )


def validate_database_config(config: DatabaseConfig) -> None:
    if config.provider not in SUPPORTED_PROVIDERS:
        raise DatabaseConfigurationError(
            f"Unknown database provider: {config.provider}. Currently supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    if not config.url:
        raise DatabaseConfigurationError(
            f"Database URL configuration is required for provider {config.provider}. Set DATABASE_URL in your .env file."
        )


settings = Settings()
