"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from sniper.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
engine_kwargs = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False
    # In-memory SQLite only lives as long as its connection
    if settings.database_url in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
    **engine_kwargs,
)

# Columns added to sniper_config after the first release, with their DDL
_SNIPER_CONFIG_SPEED_COLUMNS = {
    "mev_protection": "BOOLEAN DEFAULT FALSE",
    "transaction_speed": "VARCHAR(20) DEFAULT 'standard'",
    "jito_tip_lamports": "BIGINT",
    "compute_unit_price_micro_lamports": "BIGINT",
    "compute_unit_limit": "INTEGER",
    "use_private_rpc": "BOOLEAN DEFAULT FALSE",
}


def _migrate_position(inspector):
    from sqlalchemy import text

    if "position" not in inspector.get_table_names():
        return
    columns = {col["name"] for col in inspector.get_columns("position")}
    if "closing_started_at" in columns:
        return
    with engine.connect() as conn:
        logger.info("Migrating: adding position.closing_started_at")
        conn.execute(text("ALTER TABLE position ADD COLUMN closing_started_at TIMESTAMP"))
        conn.commit()


def _run_migrations():
    """Add columns introduced after the first release to existing tables."""
    from sqlalchemy import text

    inspector = inspect(engine)
    _migrate_position(inspector)

    if "sniper_config" not in inspector.get_table_names():
        return

    columns = {col["name"] for col in inspector.get_columns("sniper_config")}
    missing = {
        name: ddl for name, ddl in _SNIPER_CONFIG_SPEED_COLUMNS.items() if name not in columns
    }
    if not missing:
        return

    with engine.connect() as conn:
        for name, ddl in missing.items():
            logger.info(f"Migrating: adding sniper_config.{name}")
            conn.execute(text(f"ALTER TABLE sniper_config ADD COLUMN {name} {ddl}"))
        # Configs that already asked for MEV protection get the faster tier
        if "transaction_speed" in missing and "mev_protection" not in missing:
            conn.execute(text(
                "UPDATE sniper_config SET transaction_speed = 'fast' "
                "WHERE mev_protection = TRUE"
            ))
        conn.commit()


def create_db_and_tables():
    """Create all tables. Called on startup."""
    import sniper.models  # noqa: F401  (registers tables on the metadata)

    SQLModel.metadata.create_all(engine)
    _run_migrations()
