from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from app.core import config

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"


def validate_database_environment() -> None:
    if config.IS_PROD and config.DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", STARTUP_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def ensure_schema(engine: Engine) -> None:
    """create_all só em dev/teste; em produção o schema vem do Alembic."""
    if not config.AUTO_CREATE_SCHEMA:
        logger.info("%s schema auto-create disabled", STARTUP_PREFIX)
        return
    import app.models  # noqa: F401  garante os models registrados no metadata
    from app.core.database import Base

    Base.metadata.create_all(bind=engine)
    logger.info("%s schema ensured via create_all", STARTUP_PREFIX)


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    if config.IS_TEST or config.AUTO_CREATE_SCHEMA:
        logger.info("%s migration check skipped env=%s", STARTUP_PREFIX, config.ENV_NORMALIZED)
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", STARTUP_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    script_directory = ScriptDirectory.from_config(Config(str(alembic_config_path)))
    expected_heads = set(script_directory.get_heads())

    with engine.connect() as connection:
        if "alembic_version" not in inspect(connection).get_table_names():
            logger.critical("%s alembic_version table missing", STARTUP_PREFIX)
            raise RuntimeError("Database has no migration state")
        current_rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()

    current_heads = {row[0] for row in current_rows if row and row[0]}
    if current_heads != expected_heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            STARTUP_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")
    logger.info("%s migration state verified", STARTUP_PREFIX)


def seed_order_counter(db: Session) -> None:
    from app.services.sequence import ensure_order_counter

    counter = ensure_order_counter(db, floor=config.ORDER_NUMBER_FLOOR)
    logger.info("%s order counter ready value=%s", STARTUP_PREFIX, counter.value)


def sync_client_aggregates(db: Session) -> int:
    """Reaplica pedidos que ficaram sem client_synced (handler falhou ou processo caiu)."""
    from app.services.client_aggregate import sync_pending_orders

    return sync_pending_orders(db)
