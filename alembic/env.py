"""Alembic environment for the cxdesk schema.

``alembic.ini`` prepends the project root to ``sys.path``; the database URL
always comes from cxdesk settings, never from the ini file.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

import cxdesk.models  # noqa: F401
from cxdesk.config import settings
from cxdesk.database import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

COMPARE = {"target_metadata": Base.metadata, "compare_type": True}


def migrate_offline() -> None:
    context.configure(url=settings.database_url, literal_binds=True, **COMPARE)
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection) -> None:
    # SQLite cannot ALTER most columns in place.
    context.configure(
        connection=connection,
        render_as_batch=connection.dialect.name == "sqlite",
        **COMPARE,
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_online() -> None:
    # The startup hook in cxdesk.main hands over its locked connection.
    shared = config.attributes.get("connection")
    if shared is not None:
        _migrate(shared)
        return

    with create_engine(settings.database_url, future=True).connect() as connection:
        _migrate(connection)


if context.is_offline_mode():
    migrate_offline()
else:
    migrate_online()
