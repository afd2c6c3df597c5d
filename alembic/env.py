"""
Alembic environment for the discovery pipeline schema.

The URL comes from ``-x db_url=...`` when given, otherwise from the same
DATABASE_URL / CLOUD_DATABASE_URL / LOCAL_DATABASE_URL resolution the app
uses. ``alembic.ini`` carries no URL.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import db.models  # noqa: F401 (registers every table on Base.metadata)
from db.base import Base
from db.config import normalize_postgres_url, resolve_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _migration_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    url = normalize_postgres_url(override) if override else resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Migrations target PostgreSQL only.")
    return url


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _configure(url=_migration_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _migration_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        _configure(connection=connection)
