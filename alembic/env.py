"""Migration environment for the CodeQuest schema.

``DATABASE_URL`` (from the process or ``.env``) wins over the placeholder
URL in alembic.ini, matching :func:`codequest.database.engine.create_db_engine`.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool

from alembic import context
from codequest.database.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

COMPARE_OPTIONS = {
    "target_metadata": Base.metadata,
    "compare_type": True,
    "compare_server_default": True,
}


def _database_url() -> str:
    load_dotenv()
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("DATABASE_URL is not set and alembic.ini has no sqlalchemy.url")
    return url


def migrate_as_sql(url: str) -> None:
    """``alembic upgrade --sql``: emit the DDL script instead of executing it."""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_live(url: str) -> None:
    engine = create_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **COMPARE_OPTIONS)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    migrate_as_sql(_database_url())
else:
    migrate_live(_database_url())
