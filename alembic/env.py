from __future__ import annotations

from logging.config import fileConfig
from typing import Any, cast
import logging

from alembic import context
from sqlalchemy import engine_from_config, pool

from watchparty.core.config import settings
from watchparty.models import Base

config = context.config
if config.config_file_name is not None:
    try:
        fileConfig(config.config_file_name, disable_existing_loggers=False)
    except Exception:
        logging.basicConfig(level=logging.INFO)

target_metadata = Base.metadata


def _database_url() -> str:
    # `alembic -x url=...` targets another database than DATABASE_URL_SYNC
    return context.get_x_argument(as_dictionary=True).get("url") or settings.DATABASE_URL_SYNC


def run_migrations_offline() -> None:
    url = _database_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    cfg = cast(dict[str, Any], config.get_section(config.config_ini_section) or {})
    cfg["sqlalchemy.url"] = _database_url()

    connectable = engine_from_config(cfg, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # sqlite cannot ALTER most columns; batch mode recreates the table instead
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
