"""
Database Service - owns the shared async engine for the selected provider.

Initialization is:
- create (or reuse) the engine for the configured provider / URL
- run a connectivity probe bounded by a timeout
- build the DatabaseHelpers surface on top of the session factory
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import DBAPIError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from surveyhub.core.config import DatabaseConfig
from surveyhub.core.errors import DatabaseConnectionError, DatabaseSchemaError, HelpersNotAvailableError
from surveyhub.db.model_registry import metadata
from surveyhub.services.database_helpers import DatabaseHelpers

logger = logging.getLogger(__name__)

# Driver messages meaning the schema has not been created
MISSING_TABLE_MARKERS = ("does not exist", "no such table", "undefinedtable")


def _is_missing_table(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in MISSING_TABLE_MARKERS)


class DatabaseService:
    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._helpers: Optional[DatabaseHelpers] = None
        self._config: Optional[DatabaseConfig] = None

    async def initialize(self, config: DatabaseConfig) -> None:
        # Already connected to the same store
        if self._helpers is not None and self._config is not None \
                and self._config.provider == config.provider and self._config.url == config.url:
            return

        # Different target: drop the old engine first
        if self._engine is not None:
            await self.dispose()

        self._config = config
        logger.info("Initializing database with provider: %s", config.provider)

        engine = create_async_engine(config.url, pool_pre_ping=True)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        helpers = DatabaseHelpers(session_factory, provider=config.provider)

        try:
            if config.create_schema:
                await self._create_schema(engine)
            await self._probe(helpers, config.probe_timeout_seconds)
        except Exception:
            await engine.dispose()
            raise

        self._engine = engine
        self._session_factory = session_factory
        self._helpers = helpers
        logger.info("Database provider %s initialized successfully", config.provider)

    async def _probe(self, helpers: DatabaseHelpers, timeout: float) -> None:
        try:
            await asyncio.wait_for(helpers.probe(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise DatabaseConnectionError("Connection test timeout") from e
        except (ProgrammingError, OperationalError, DBAPIError) as e:
            if _is_missing_table(e):
                raise DatabaseSchemaError(
                    "Database tables not found. Please run the migrations (alembic upgrade head)."
                ) from e
            raise DatabaseConnectionError(f"Database connection failed: {e}") from e
        except OSError as e:
            raise DatabaseConnectionError(f"Database connection failed: {e}") from e

    async def _create_schema(self, engine: AsyncEngine) -> None:
        # Local sqlite stores have no migration step; create missing tables in place
        try:
            async with engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except (OperationalError, DBAPIError, OSError) as e:
            raise DatabaseConnectionError(f"Database schema bootstrap failed: {e}") from e

    @property
    def database_helpers(self) -> DatabaseHelpers:
        if self._helpers is None:
            raise HelpersNotAvailableError()
        return self._helpers

    def is_initialized(self) -> bool:
        return self._helpers is not None

    def get_current_provider(self) -> str:
        return self._config.provider if self._config is not None else "none"

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._helpers = None
