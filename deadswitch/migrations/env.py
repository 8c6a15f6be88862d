from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# ------------------------------------------------------------------------------
# Alembic config + логирование
# ------------------------------------------------------------------------------
config = context.config
if config.config_file_name and os.path.exists(config.config_file_name):
    fileConfig(config.config_file_name)
log = logging.getLogger("alembic.env")

# ------------------------------------------------------------------------------
# Base и модели: импорт пакета регистрирует все таблицы
# ------------------------------------------------------------------------------
from deadswitch.models import Base  # noqa: E402  единый Base с naming_convention

tables = sorted(Base.metadata.tables.keys())
log.info("tables in Base.metadata: %s", tables)

required = {"switches", "switch_recipients", "switch_reminders"}
missing = required.difference(tables)
if missing:
    raise RuntimeError(f"Missing tables in Base.metadata: {missing}")


# ------------------------------------------------------------------------------
# DSN конверсия: alembic ходит синхронным драйвером
# ------------------------------------------------------------------------------
def _to_sync_dsn(dsn: str) -> str:
    if "+asyncpg" in dsn:
        return dsn.replace("+asyncpg", "+psycopg")
    if "+aiosqlite" in dsn:
        return dsn.replace("+aiosqlite", "")
    return dsn


env_url = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_DSN")
if not env_url:
    env_url = "sqlite:///./deadswitch.db"
config.set_main_option("sqlalchemy.url", _to_sync_dsn(env_url))

target_metadata = Base.metadata


# ------------------------------------------------------------------------------
# Миграции
# ------------------------------------------------------------------------------
def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        log.info("online migrations, dialect=%s", connection.dialect.name)
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
