import asyncio
from logging.config import fileConfig
from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

# Import app settings and aggregated metadata (settings loads .env)
from surveyhub.core.config import build_database_url, settings
from surveyhub.db.model_registry import metadata  # this must import ALL model modules

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)

target_metadata = metadata

def _get_url() -> str:
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not set and settings.database_url is empty.")
    return build_database_url(settings.database_provider, settings.database_url)

def run_migrations_offline():
    url = _get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()

def _run_sync_migrations(connection):
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()

async def run_migrations_online():
    connectable = async_engine_from_config(
        {"url": _get_url()},   # <-- use "url" when prefix=""
        prefix="",             # <-- no "sqlalchemy." prefix
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(_run_sync_migrations)
    await connectable.dispose()

if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
