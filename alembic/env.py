"""Alembic environment for the stock ledger schema (async engine, URL from settings)."""
import asyncio
from logging.config import fileConfig

# ruff: noqa: F401

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from src.core.config import settings
from src.core.database.base import Base

# Every mapped table must be imported so autogenerate sees it
from src.core.audit.models import AuditLog
from src.core.documents.models import DocumentSequence
from src.core.inventory_settings.models import InventoryConfig
from src.modules.batches.models import InventoryBatch
from src.modules.items.models import InventoryItem
from src.modules.ledger.models import InventoryLedger
from src.modules.serials.models import InventorySerial
from src.modules.transactions.models import InventoryTransaction
from src.modules.warehouses.models import Warehouse

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Decimal precision changes (quantities, costs) must show up in autogenerate
COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of executing it."""
    context.configure(
        url=settings.database_url,
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=Base.metadata, **COMPARE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = settings.database_url
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
