from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

from alert_engine.core.config import get_settings
from alert_engine.core.database import Base
import alert_engine.models  # noqa: F401

# this is the Alembic Config object, which provides access to the values
# within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Migrations run on the synchronous driver
config.set_main_option("sqlalchemy.url", get_settings().database_url_sync)

target_metadata = Base.metadata

# Tables owned by the core platform are mirrored as read models only
CORE_PLATFORM_TABLES = {"users", "windfarms", "portfolios", "portfolio_items", "windfarm_metric_samples"}


def include_object(object, name, type_, reflected, compare_to):
    if type_ == "table" and name in CORE_PLATFORM_TABLES:
        return False
    return True


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
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
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
