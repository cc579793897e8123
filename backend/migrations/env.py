"""
backend/migrations/env.py — Alembic environment.

Uses the same configuration classes as the app: FLASK_ENV picks the config
and its SQLALCHEMY_DATABASE_URI is the migration target. TEST_RUN=1 forces
the testing config.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from backend.app.extensions import db
from backend.app.models import game, group, membership, transaction, user  # noqa: F401
from backend.config import ACTIVE_CONFIG_NAME, config_by_name

target_metadata = db.metadata

# ── Pick the right database URL ───────────────────────────────────────────
_config_name = "testing" if os.getenv("TEST_RUN") else ACTIVE_CONFIG_NAME
db_url = config_by_name.get(_config_name, config_by_name["development"]).SQLALCHEMY_DATABASE_URI

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
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
