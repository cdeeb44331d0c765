"""
groupledger/migrations/env.py — Alembic environment.

Migrates the database of the active config class (FLASK_ENV), or of
TestingConfig when TEST_RUN is set. URLs come from the environment or .env.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from groupledger.app.extensions import db
from groupledger.app.models import (  # noqa: F401
    group,
    group_expense,
    ledger_entry,
    membership,
    split_line,
    user,
)
from groupledger.config import ActiveConfig, TestingConfig

target_metadata = db.metadata

# ── Pick the right database URL ───────────────────────────────────────────
db_url = (TestingConfig if os.getenv("TEST_RUN") else ActiveConfig).SQLALCHEMY_DATABASE_URI
if not db_url:
    raise RuntimeError("No database URL configured; set DATABASE_URL.")

# ── Alembic config ────────────────────────────────────────────────────────
config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
