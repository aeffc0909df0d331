"""
Composition root: one instance of each engine component, wired together.

The FastAPI app keeps the container on ``app.state.container``; routes reach
it through ``surveyhub.api.deps``. Nothing here touches the database until
``connection_initializer`` is awaited.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from surveyhub.core.config import Settings, create_database_config, settings as default_settings
from surveyhub.services.config_validator import ConfigValidator
from surveyhub.services.connection_initializer import ConnectionInitializer
from surveyhub.services.database_proxy import ValidatingHelpersProxy
from surveyhub.services.database_service import DatabaseService
from surveyhub.services.instance_status_service import InstanceStatusService
from surveyhub.services.scheduler_service import build_scheduler
from surveyhub.services.session_cleanup_service import SessionCleanupService


@dataclass
class AppContainer:
    settings: Settings
    database_service: DatabaseService
    connection_initializer: ConnectionInitializer
    helpers: ValidatingHelpersProxy
    scheduler: AsyncIOScheduler
    config_validator: ConfigValidator
    instance_status: InstanceStatusService
    session_cleanup: SessionCleanupService


def build_container(source: Optional[Settings] = None) -> AppContainer:
    source = source or default_settings

    database_service = DatabaseService()
    initializer = ConnectionInitializer(
        database_service,
        config_factory=lambda: create_database_config(source),
        max_attempts=source.database_max_retries,
        retry_delay=source.database_retry_delay_seconds,
    )
    helpers = ValidatingHelpersProxy(initializer, database_service)
    scheduler = build_scheduler()

    return AppContainer(
        settings=source,
        database_service=database_service,
        connection_initializer=initializer,
        helpers=helpers,
        scheduler=scheduler,
        config_validator=ConfigValidator(helpers, settle_seconds=source.validation_settle_seconds),
        instance_status=InstanceStatusService(
            helpers, scheduler, interval_minutes=source.instance_status_interval_minutes,
        ),
        session_cleanup=SessionCleanupService(
            helpers,
            initializer,
            scheduler,
            session_timeout=timedelta(hours=source.session_timeout_hours),
            cleanup_interval=timedelta(minutes=source.session_cleanup_interval_minutes),
            batch_size=source.session_cleanup_batch_size,
        ),
    )
