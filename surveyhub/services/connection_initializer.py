"""
Connection Initializer - establishes the shared backend connection exactly once.

One instance lives on the application container. Concurrent callers share a
single in-flight attempt (an asyncio.Task awaited through asyncio.shield so a
cancelled caller never cancels the attempt for everybody else). A failed
attempt clears itself and caches its error; callers that allow retries then
join or start exactly one fresh attempt.
"""
import asyncio
import logging
from typing import Callable, Optional

from surveyhub.core.config import DatabaseConfig, create_database_config, settings, validate_database_config
from surveyhub.core.errors import describe_initialization_error, is_retryable_error
from surveyhub.services.database_service import DatabaseService

logger = logging.getLogger(__name__)


class ConnectionInitializer:
    def __init__(
        self,
        database_service: DatabaseService,
        config_factory: Callable[[], DatabaseConfig] = create_database_config,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self._database_service = database_service
        self._config_factory = config_factory
        self._max_attempts = max_attempts if max_attempts is not None else settings.database_max_retries
        self._retry_delay = retry_delay if retry_delay is not None else settings.database_retry_delay_seconds

        self._initialized = False
        self._task: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._error

    async def initialize(self, retry_on_failure: bool = True) -> None:
        if self._initialized:
            logger.debug("Database already initialized, skipping")
            return

        if self._error is not None and not retry_on_failure:
            raise self._error

        task = self._task
        if task is not None:
            logger.info("Database initialization already in progress, waiting...")
            try:
                await asyncio.shield(task)
                return
            except Exception:
                if not retry_on_failure:
                    raise
                # The failed attempt has already cleared itself; fall through to
                # join (or start) the single retry attempt.

        if self._initialized:
            return
        if self._task is None:
            self._error = None
            self._task = asyncio.get_running_loop().create_task(self._run_attempt())
        await asyncio.shield(self._task)

    async def retry_initialization(self, max_attempts: Optional[int] = None, delay: Optional[float] = None) -> None:
        max_attempts = max_attempts if max_attempts is not None else self._max_attempts
        delay = delay if delay is not None else self._retry_delay
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            try:
                logger.info("Database initialization attempt %s/%s", attempt, max_attempts)
                # A cached failure would be re-raised as-is; each attempt here must be real
                self._error = None
                await self.initialize(retry_on_failure=False)
                return
            except Exception as e:
                last_error = e
                logger.warning("Database initialization attempt %s failed: %s", attempt, e)

                if not is_retryable_error(e):
                    raise

                if attempt < max_attempts:
                    wait_time = delay * attempt  # linear backoff
                    logger.info("Waiting %.1fs before retry...", wait_time)
                    await asyncio.sleep(wait_time)

        if last_error is not None:
            raise last_error
        raise RuntimeError("Database initialization failed after all retry attempts")

    async def _run_attempt(self) -> None:
        try:
            await self._establish()
        except Exception as e:
            self._task = None
            self._error = e
            logger.error("Database initialization failed: %s (%s)", e, describe_initialization_error(e))
            raise
        self._initialized = True
        self._error = None
        self._task = None
        logger.info("Database service initialized successfully")

    async def _establish(self) -> None:
        config = self._config_factory()
        validate_database_config(config)
        await self._database_service.initialize(config)
