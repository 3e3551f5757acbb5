import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# ---- make ``ownurvoice`` importable from backend/ ----
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.abspath(os.path.join(current_dir, ".."))
sys.path.insert(0, project_root)

from ownurvoice.config import ASYNC_DATABASE_URL  # noqa: E402
from ownurvoice.db import Base  # noqa: E402
import ownurvoice.models  # noqa: E402,F401  registers the tables

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# async drivers -> their sync counterparts for migrations
SYNC_DRIVERS = {
    "+aiosqlite": "",
    "+asyncpg": "+psycopg2",
}


def get_db_url() -> str:
    """
    DB URL precedence:
    1) ALEMBIC_DB_URL
    2) DATABASE_URL
    3) ASYNC_DATABASE_URL with its async driver swapped for a sync one
    4) sqlalchemy.url from alembic.ini
    """
    env_url = os.getenv("ALEMBIC_DB_URL") or os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    if ASYNC_DATABASE_URL:
        url = ASYNC_DATABASE_URL
        for async_driver, sync_driver in SYNC_DRIVERS.items():
            url = url.replace(async_driver, sync_driver)
        return url
    return config.get_main_option("sqlalchemy.url")


def run_migrations_offline() -> None:
    """Offline mode: emit SQL only."""
    context.configure(
        url=get_db_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_db_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
