"""Alembic environment configuration for Compliance-Engine."""

import sys
from pathlib import Path
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Ensure src/ is on sys.path for editable installs
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from compliance_engine.common.config import get_settings
from compliance_engine.common.models import Base

# Import all models so they register with Base.metadata
import compliance_engine.organizations.models  # noqa: F401
import compliance_engine.users.models  # noqa: F401
import compliance_engine.posts.models  # noqa: F401
import compliance_engine.approvals.models  # noqa: F401
import compliance_engine.assets.models  # noqa: F401
import compliance_engine.audit.models  # noqa: F401

config = context.config

# Precedence: alembic -x sqlalchemy.url=..., then alembic.ini, then COMPLIANCE_DB_URL.
# Migrations run on a sync driver, so the async driver suffix is dropped.
cmd_url = context.get_x_argument(as_dictionary=True).get("sqlalchemy.url")
if cmd_url:
    config.set_main_option("sqlalchemy.url", cmd_url)
elif not config.get_main_option("sqlalchemy.url"):
    config.set_main_option(
        "sqlalchemy.url", get_settings().db_url.replace("+aiosqlite", "").replace("+asyncpg", ""),
    )

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url, target_metadata=target_metadata, literal_binds=True, render_as_batch=True,
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
            connection=connection, target_metadata=target_metadata, render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
