"""
Persistence for PixelPay
"""

from typing import Union

import structlog

from pixelpay.database.base import AuditLog, CatalogStore, PurchaseLedger, SettingsBackend
from pixelpay.database.memory import InMemoryDatabase
from pixelpay.database.settings import SettingsStore
from pixelpay.database.supabase_client import SupabaseDatabase

logger = structlog.get_logger()

__all__ = [
    "AuditLog",
    "CatalogStore",
    "InMemoryDatabase",
    "PurchaseLedger",
    "SettingsBackend",
    "SettingsStore",
    "SupabaseDatabase",
    "create_database",
]


def create_database(config, table_prefix: str = "") -> Union[InMemoryDatabase, SupabaseDatabase]:
    """Supabase when credentials are configured, otherwise in-memory"""
    if config.supabase_url and config.supabase_key:
        logger.info("database_backend_selected", backend="supabase", table_prefix=table_prefix)
        return SupabaseDatabase(config.supabase_url, config.supabase_key, table_prefix=table_prefix)

    logger.warning("database_backend_selected", backend="memory", message="State is lost on restart")
    return InMemoryDatabase()
