from logging.config import fileConfig
from sqlalchemy import engine_from_config, make_url
from sqlalchemy import pool
from alembic import context
import os
import sys

# Add the project root to the Python path
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from groupchat.config import settings  # noqa: E402
from groupchat.models import Base  # noqa: E402

config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


# Ensure Alembic always uses a synchronous driver
def _synchronous_url(async_url: str) -> str:
    url = make_url(async_url)
    driver = url.drivername

    if driver == "postgresql+asyncpg":
        url = url.set(drivername="postgresql+psycopg")
    elif driver in {"postgresql+psycopg_async", "postgresql+psycopg2"}:
        url = url.set(drivername="postgresql+psycopg")
    elif driver == "sqlite+aiosqlite":
        url = url.set(drivername="sqlite+pysqlite")
    elif "+" in driver:
        # Fallback: drop async suffix if present
        url = url.set(drivername=driver.split("+")[0])

    return url.render_as_string(hide_password=False)


sync_database_url = _synchronous_url(settings.database_url)
config.set_main_option("sqlalchemy.url", sync_database_url)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    context.configure(
        url=sync_database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=sync_database_url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = sync_database_url
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
