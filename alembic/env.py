import os
import sys
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

# Añadimos la ruta del proyecto al path de Python
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

# Importamos la Base y TODOS los modelos de la aplicación
from app.db.base import Base
from app.models import *  # noqa: F401,F403
from app.core.config import settings

# Obtenemos el objeto de configuración de Alembic
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Asignamos los metadatos y la URL de la base de datos
target_metadata = Base.metadata
config.set_main_option('sqlalchemy.url', str(settings.DATABASE_URI))

# SQLite no soporta ALTER TABLE completo: se usa el modo batch
RENDER_AS_BATCH = str(settings.DATABASE_URI).startswith("sqlite")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"param_style": "named"},
        render_as_batch=RENDER_AS_BATCH,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=RENDER_AS_BATCH,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
