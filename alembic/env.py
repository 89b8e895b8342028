from logging.config import fileConfig
from typing import Any

from sqlalchemy import engine_from_config, pool
from sqlalchemy.schema import CreateSchema

from alembic import context  # type: ignore[attr-defined]
from sync_stays.config import DATABASE_URL, SCHEMA
from sync_stays.models.base import Base
from sync_stays.models.bookings import Booking  # noqa: F401
from sync_stays.models.connections import ConnectionProperty  # noqa: F401
from sync_stays.models.facts import ReservationFact  # noqa: F401
from sync_stays.models.feeds import Feed  # noqa: F401
from sync_stays.models.messages import MailMessage  # noqa: F401
from sync_stays.models.properties import Property  # noqa: F401
from sync_stays.models.sync_runs import SyncRun  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
config.set_main_option("sqlalchemy.url", DATABASE_URL)


def include_object(
    object_: Any,
    name: str,
    type_: str,
    reflected: bool,
    compare_to: Any,
) -> bool:
    """Autogenerate only compares objects in the ledger schema."""
    return getattr(object_, "schema", SCHEMA) == SCHEMA


def run_migrations_offline() -> None:
    """Emit the migration SQL as a script (alembic upgrade --sql)."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_schemas=True,
        include_object=include_object,
        version_table_schema=SCHEMA,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_schemas=True,
            include_object=include_object,
            version_table_schema=SCHEMA,
            compare_type=True,
        )
        # The version table lives in the ledger schema, so create it first
        connection.execute(CreateSchema(SCHEMA, if_not_exists=True))

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
