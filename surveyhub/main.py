from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from typing import Optional

from surveyhub.core.config import settings
from surveyhub.core.container import AppContainer, build_container
from surveyhub.core.errors import describe_initialization_error
from surveyhub.core.logging_config import configure_logging
from surveyhub.services.scheduler_service import start_scheduler, stop_scheduler
from surveyhub.api.routes.admin import router as admin_router
from surveyhub.api.routes.surveys import router as surveys_router
from surveyhub.api.routes.option_sets import router as option_sets_router
from surveyhub.api.routes.sessions import router as sessions_router

logger = logging.getLogger(__name__)


def create_app(container: Optional[AppContainer] = None, run_background: bool = True) -> FastAPI:
    """
    Build the API around one container.
    ``run_background=False`` skips the database connect and the sweeps on startup.
    """
    container = container or build_container(settings)

    app = FastAPI(title=container.settings.app_name)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(admin_router)
    app.include_router(surveys_router)
    app.include_router(option_sets_router)
    app.include_router(sessions_router)

    @app.on_event("startup")
    async def startup_event():
        """Connect to the database, then start the background sweeps."""
        if not run_background:
            return

        try:
            await container.connection_initializer.retry_initialization()
        except Exception as e:
            # Stay up so /health can report the cause
            logger.error("Database initialization failed: %s", describe_initialization_error(e))
            return

        try:
            container.session_cleanup.start()
            container.instance_status.start()
            start_scheduler(container.scheduler)
        except Exception as e:
            logger.error(f"Failed to start background jobs: {e}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the sweeps and release the engine."""
        try:
            container.session_cleanup.stop()
            container.instance_status.stop()
            await stop_scheduler(container.scheduler)
        except Exception as e:
            logger.warning(f"Failed to stop background jobs: {e}")
        await container.database_service.dispose()

    @app.get("/health")
    def health():
        initializer = container.connection_initializer
        database = {
            "provider": container.database_service.get_current_provider(),
            "initialized": initializer.is_initialized,
        }
        if initializer.last_error is not None and not initializer.is_initialized:
            database["error"] = describe_initialization_error(initializer.last_error)
        return {"ok": True, "database": database}

    return app


configure_logging(settings.log_level, settings.log_json)
app = create_app()
