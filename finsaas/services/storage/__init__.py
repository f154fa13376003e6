"""
Storage Services Package

Provides the abstract Persistence Gateway and its implementations:
Supabase (hosted Postgres), Google Sheets and in-memory.
"""

from finsaas.services.storage.interface import (
    COLLECTION_MODELS,
    AuditStorageInterface,
    Collection,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    collection_for,
)
from finsaas.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from finsaas.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)
from finsaas.services.storage.supabase_store import (
    SupabaseLedgerStorage,
    create_supabase_client,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "COLLECTION_MODELS",
    "Collection",
    "collection_for",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    # Supabase implementation
    "SupabaseLedgerStorage",
    "create_supabase_client",
]
