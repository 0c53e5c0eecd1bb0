import importlib
import logging
import os
import pkgutil
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from flask import current_app

config = context.config


def _init_logging():
    for ini in (config.config_file_name, Path(__file__).resolve().parent / "alembic.ini"):
        if ini and Path(ini).exists():
            fileConfig(str(ini))
            return
    logging.basicConfig(level=logging.INFO)


_init_logging()
logger = logging.getLogger("alembic.env")


def get_engine():
    # Flask-SQLAlchemy 3.x exposes the engine directly
    return current_app.extensions["migrate"].db.engine


def get_engine_url():
    return get_engine().url.render_as_string(hide_password=False).replace("%", "%%")


config.set_main_option("sqlalchemy.url", get_engine_url())
target_db = current_app.extensions["migrate"].db


def get_metadata():
    if hasattr(target_db, "metadatas"):
        return target_db.metadatas[None]
    return target_db.metadata


def _autoload_models():
    """Import every kitstore.models submodule so autogenerate sees all tables,
    indexes and constraints (entitlement uniqueness lives there)."""
    import kitstore.models as models_pkg

    for mod in pkgutil.iter_modules(models_pkg.__path__):
        importlib.import_module(f"kitstore.models.{mod.name}")
    logger.info("Loaded models: %s", ", ".join(sorted(get_metadata().tables)))


# Index drops must be opted into explicitly, e.g. ALEMBIC_DROP_INDEX_ALLOWLIST=ix_kits_category
_DROP_INDEX_ALLOWLIST = {
    name.strip()
    for name in os.getenv("ALEMBIC_DROP_INDEX_ALLOWLIST", "").split(",")
    if name.strip()
}


def _include_object(object, name, type_, reflected, compare_to):
    if type_ == "index" and reflected and compare_to is None:
        return name in _DROP_INDEX_ALLOWLIST
    return True


def run_migrations_offline():
    _autoload_models()
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=get_metadata(),
        literal_binds=True,
        compare_type=True,
        include_object=_include_object,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    def process_revision_directives(context_, revision, directives):
        # skip empty autogenerate revisions
        if getattr(config.cmd_opts, "autogenerate", False):
            if directives[0].upgrade_ops.is_empty():
                directives[:] = []
                logger.info("No changes in schema detected.")

    _autoload_models()
    conf_args = dict(current_app.extensions["migrate"].configure_args)
    conf_args.setdefault("process_revision_directives", process_revision_directives)
    conf_args.update(
        compare_type=True,
        include_object=_include_object,
        target_metadata=get_metadata(),
    )

    connectable = get_engine()
    with connectable.connect() as connection:
        # SQLite cannot ALTER constraints in place; batch mode copies the table
        conf_args.setdefault("render_as_batch", connection.dialect.name == "sqlite")
        context.configure(connection=connection, **conf_args)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
