"""Alembic environment for the intake service.

Migrations run through psycopg2 (sync). The URL follows the same
environment precedence as intake_service/db.py, with a
postgresql+psycopg2:// driver prefix.
"""

import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

_DRIVER_PREFIX = "postgresql+psycopg2://"


def _get_url() -> str:
    if url := os.environ.get("DATABASE_URL"):
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", _DRIVER_PREFIX, 1)
        return url

    user = os.environ.get("DB_USER", "intake")
    password = os.environ.get("DB_PASSWORD", "intake")
    host = os.environ.get("DB_HOST", "localhost")
    port = os.environ.get("DB_PORT", "5432")
    name = os.environ.get("DB_NAME", "intake")
    sslmode = os.environ.get("DB_SSLMODE", "disable")
    return f"{_DRIVER_PREFIX}{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"


def run_migrations_offline() -> None:
    context.configure(
        url=_get_url(),
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = _get_url()
    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=None)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
