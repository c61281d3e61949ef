from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from dotenv import load_dotenv

# Make the package importable when alembic runs from the repo root and pick
# up DB_URL from .env before the engine module reads it.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / ".env")

from vrflottery.db.engine import DEFAULT_SQLITE_URL, make_engine  # noqa: E402
from vrflottery.models import Base  # noqa: E402 - import populates metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Percent signs need to be escaped due to ConfigParser interpolation rules.
config.set_main_option("sqlalchemy.url", DEFAULT_SQLITE_URL.replace("%", "%%"))


def _configure_kwargs(is_sqlite: bool) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        "render_as_batch": is_sqlite,
    }


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting to the database."""

    context.configure(
        url=DEFAULT_SQLITE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(DEFAULT_SQLITE_URL.startswith("sqlite")),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations through the application's engine factory."""

    engine = make_engine(database_url=DEFAULT_SQLITE_URL)
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            **_configure_kwargs(connection.dialect.name == "sqlite"),
        )

        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
